from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from geofence_attendance.core.exceptions import LocationUnavailable
from geofence_attendance.monitoring.location import Position, PushLocationSource


@pytest.fixture
def source(clock) -> PushLocationSource:
    return PushLocationSource(max_age_s=60, now=clock.now)


def _position(clock, lat=40.7128, lon=-74.0060) -> Position:
    return Position(latitude=lat, longitude=lon, timestamp=clock.now(), accuracy=8.0)


def test_publish_fans_out_to_subscribers(source, clock):
    seen_a, seen_b, seen_other = [], [], []
    source.watch_location(7, seen_a.append)
    source.watch_location(7, seen_b.append)
    source.watch_location(8, seen_other.append)

    assert source.publish(7, _position(clock)) == 2
    assert len(seen_a) == len(seen_b) == 1
    assert seen_other == []
    assert source.subscriber_count() == 3


def test_cancel_stops_delivery(source, clock):
    seen = []
    handle = source.watch_location(7, seen.append)
    handle.cancel()
    handle.cancel()

    assert source.publish(7, _position(clock)) == 0
    assert seen == []
    assert source.subscriber_count(7) == 0


def test_failing_subscriber_does_not_block_others(source, clock):
    def boom(position):
        raise RuntimeError("subscriber bug")

    seen = []
    source.watch_location(7, boom)
    source.watch_location(7, seen.append)
    source.publish(7, _position(clock))
    assert len(seen) == 1


def test_current_location_serves_fresh_fix(source, clock):
    position = _position(clock)
    source.publish(7, position)
    clock.advance(seconds=59)
    assert source.get_current_location(7, timeout_s=0.01) == position


def test_stale_fix_times_out(source, clock):
    source.publish(7, _position(clock))
    clock.advance(seconds=61)
    with pytest.raises(LocationUnavailable) as exc:
        source.get_current_location(7, timeout_s=0.01)
    assert exc.value.reason == LocationUnavailable.TIMEOUT


def test_waits_for_a_new_fix(source, clock):
    position = _position(clock)
    timer = threading.Timer(0.05, source.publish, args=(7, position))
    timer.start()
    try:
        assert source.get_current_location(7, timeout_s=5) == position
    finally:
        timer.cancel()


def test_denied_permission(source, clock):
    errors = []
    source.watch_location(7, lambda p: None, errors.append)
    source.deny(7)

    assert [e.reason for e in errors] == [LocationUnavailable.PERMISSION_DENIED]
    with pytest.raises(LocationUnavailable) as exc:
        source.get_current_location(7, timeout_s=1)
    assert exc.value.reason == LocationUnavailable.PERMISSION_DENIED

    # A new fix means permission came back.
    clock.advance(seconds=1)
    source.publish(7, _position(clock))
    assert source.get_current_location(7, timeout_s=0.01).timestamp == clock.now()


def test_position_to_sample(clock):
    sample = _position(clock).to_sample(participant_id=7, event_id=1)
    assert (sample.participant_id, sample.event_id) == (7, 1)
    assert sample.timestamp == clock.now()
    assert sample.accuracy == 8.0
    assert clock.now() - sample.timestamp == timedelta(0)
