from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from geofence_attendance.core.enums import AttendanceState, CheckOutReason
from geofence_attendance.core.exceptions import LocationUnavailable
from geofence_attendance.monitoring.location import Position, PushLocationSource
from geofence_attendance.monitoring.trigger import AutoCheckTrigger

UTC = timezone.utc


class FakeTimers:
    def __init__(self):
        self.jobs = {}

    def start(self, record_id, func, interval_s):
        self.jobs[record_id] = (func, interval_s)

    def stop(self, record_id):
        return self.jobs.pop(record_id, None) is not None


@pytest.fixture
def source(clock) -> PushLocationSource:
    return PushLocationSource(max_age_s=60, now=clock.now)


@pytest.fixture
def timers() -> FakeTimers:
    return FakeTimers()


@pytest.fixture
def trigger(engine, source, timers):
    with AutoCheckTrigger(
        engine.service,
        engine.records,
        engine.events,
        source,
        timers,
        clock=engine.clock,
        notifications=engine.sink,
        heartbeat_interval_s=120,
        location_timeout_s=0.01,
        failure_threshold=3,
    ) as t:
        yield t


@pytest.fixture
def publish(source, sample_at):
    def send(participant_id: int, meters: float) -> None:
        s = sample_at(meters, participant_id=participant_id)
        source.publish(participant_id, Position(s.latitude, s.longitude, s.timestamp, s.accuracy))

    return send


def _open_window(engine):
    engine.clock.set(datetime(2025, 6, 14, 12, 30, tzinfo=UTC))  # 08:30 local


def test_sync_starts_monitoring_once_window_opens(engine, trigger, source, timers):
    rid = engine.service.register(7, 1).record_id
    engine.clock.set(datetime(2025, 6, 14, 11, 0, tzinfo=UTC))
    assert trigger.sync().started == []
    assert source.subscriber_count() == 0

    _open_window(engine)
    report = trigger.sync()
    assert report.started == [rid]
    assert trigger.monitored_record_ids == {rid}
    assert source.subscriber_count(7) == 1
    assert timers.jobs[rid][1] == 120

    # Already monitored: nothing new.
    assert trigger.sync().started == []
    assert source.subscriber_count(7) == 1


def test_inside_sample_checks_in_exactly_once(engine, trigger, publish):
    rid = engine.service.register(7, 1).record_id
    _open_window(engine)
    trigger.sync()

    publish(7, 30)
    assert engine.records.get(rid).state == AttendanceState.INSIDE
    engine.clock.advance(seconds=10)
    publish(7, 20)
    engine.clock.advance(seconds=10)
    publish(7, 10)

    assert engine.sink.kinds().count("checked_in") == 1
    assert engine.records.get(rid).checked_in_at == datetime(2025, 6, 14, 12, 30, tzinfo=UTC)


def test_outside_sample_never_checks_in(engine, trigger, publish):
    rid = engine.service.register(7, 1).record_id
    _open_window(engine)
    trigger.sync()

    publish(7, 250)
    record = engine.records.get(rid)
    assert record.state == AttendanceState.REGISTERED
    assert record.version == 0


def test_samples_drive_outside_tracking(engine, trigger, publish):
    rid = engine.service.register(7, 1).record_id
    _open_window(engine)
    trigger.sync()
    publish(7, 0)

    engine.clock.advance(seconds=30)
    publish(7, 400)
    assert engine.records.get(rid).state == AttendanceState.OUTSIDE_OK


def test_event_end_checks_out_and_releases_resources(engine, trigger, source, timers, publish):
    rid = engine.service.register(7, 1).record_id
    other = engine.service.register(8, 1).record_id
    _open_window(engine)
    trigger.sync()
    publish(7, 0)

    engine.clock.set(datetime(2025, 6, 14, 16, 1, tzinfo=UTC))
    report = trigger.sync()

    assert report.checked_out == [rid]
    assert sorted(report.stopped) == sorted([rid, other])
    record = engine.records.get(rid)
    assert record.state == AttendanceState.CHECKED_OUT
    assert record.checkout_reason == CheckOutReason.AUTO
    assert record.checked_out_at == datetime(2025, 6, 14, 16, 0, tzinfo=UTC)
    assert engine.records.get(other).state == AttendanceState.REGISTERED
    assert trigger.monitored_record_ids == set()
    assert source.subscriber_count() == 0
    assert timers.jobs == {}
    assert len(engine.service.locks) == 0


def test_sample_after_end_checks_out_and_stops(engine, trigger, source, publish):
    rid = engine.service.register(7, 1).record_id
    _open_window(engine)
    trigger.sync()
    publish(7, 0)

    engine.clock.set(datetime(2025, 6, 14, 16, 5, tzinfo=UTC))
    publish(7, 0)

    assert engine.records.get(rid).state == AttendanceState.CHECKED_OUT
    assert trigger.session(rid) is None
    assert source.subscriber_count() == 0


def test_manual_check_out_is_released_on_next_sample(engine, trigger, source, publish):
    rid = engine.service.register(7, 1).record_id
    _open_window(engine)
    trigger.sync()
    publish(7, 0)
    engine.service.check_out(rid)

    engine.clock.advance(seconds=5)
    publish(7, 0)
    assert trigger.session(rid) is None
    assert source.subscriber_count() == 0


def test_repeated_location_failures_are_surfaced(engine, trigger, source):
    rid = engine.service.register(7, 1).record_id
    _open_window(engine)
    trigger.sync()

    source.deny(7)
    source.deny(7)
    assert "location_unavailable" not in engine.sink.kinds()
    source.deny(7)

    notices = [n for n in engine.sink.notices if n.kind == "location_unavailable"]
    assert len(notices) == 1
    assert notices[0].payload == {"reason": "permission_denied", "failures": 3}
    assert engine.records.get(rid).state == AttendanceState.REGISTERED


def test_concurrent_failures_are_counted_once_each(engine, trigger):
    rid = engine.service.register(7, 1).record_id
    _open_window(engine)
    trigger.sync()
    barrier = threading.Barrier(4)

    def fail_many():
        barrier.wait()
        for _ in range(30):
            trigger.handle_error(rid, LocationUnavailable(LocationUnavailable.TIMEOUT))

    threads = [threading.Thread(target=fail_many) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert trigger.session(rid).failures == 120
    notices = [n for n in engine.sink.notices if n.kind == "location_unavailable"]
    assert sorted(n.payload["failures"] for n in notices) == list(range(3, 121, 3))


def test_heartbeat_escalates_silent_participant(engine, trigger, timers, publish):
    rid = engine.service.register(7, 1).record_id
    _open_window(engine)
    trigger.sync()
    publish(7, 0)
    engine.clock.advance(seconds=10)
    publish(7, 400)

    # Device goes quiet; the forced fix times out and the timer still escalates.
    engine.clock.advance(seconds=601)
    heartbeat, _ = timers.jobs[rid]
    heartbeat()

    record = engine.records.get(rid)
    assert record.state == AttendanceState.ABSENT
    assert trigger.session(rid) is None
    assert rid not in timers.jobs


def test_heartbeat_uses_forced_fix(engine, trigger, timers, publish, source):
    rid = engine.service.register(7, 1).record_id
    _open_window(engine)
    trigger.sync()
    publish(7, 0)
    engine.clock.advance(seconds=10)
    publish(7, 400)

    engine.clock.advance(seconds=300)
    # A fix arrives without subscribers seeing it (e.g. cached by the source).
    session = trigger.session(rid)
    session.subscription.cancel()
    publish(7, 5)

    trigger.heartbeat(rid)
    assert engine.records.get(rid).state == AttendanceState.INSIDE


def test_heartbeat_swallows_errors(engine, trigger, caplog, monkeypatch):
    rid = engine.service.register(7, 1).record_id
    _open_window(engine)
    trigger.sync()

    def boom(record_id):
        raise RuntimeError("store down")

    monkeypatch.setattr(engine.service, "heartbeat", boom)

    trigger.heartbeat(rid)
    assert "heartbeat failed" in caplog.text


def test_shutdown_releases_everything(engine, source, timers):
    trigger = AutoCheckTrigger(engine.service, engine.records, engine.events, source, timers, clock=engine.clock)
    engine.service.register(7, 1)
    engine.service.register(8, 1)
    _open_window(engine)
    trigger.sync()
    assert len(trigger.monitored_record_ids) == 2

    trigger.shutdown()
    assert trigger.monitored_record_ids == set()
    assert source.subscriber_count() == 0
    assert timers.jobs == {}
