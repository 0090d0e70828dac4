from __future__ import annotations

from dataclasses import replace
from datetime import timedelta

import pytest

from geofence_attendance.attendance.model import AttendanceRecord
from geofence_attendance.attendance.state_machine import (
    AttendanceStateMachine,
    CheckInRequested,
    CheckOutRequested,
    HeartbeatElapsed,
    LocationObserved,
    WindowEnded,
)
from geofence_attendance.core.enums import AlertType, AttendanceState, CheckOutReason, WindowPhase
from geofence_attendance.core.exceptions import AlreadyTerminal, OutsideGeofence, ValidationError, WindowNotOpen
from geofence_attendance.geofence.classifier import classify


@pytest.fixture
def machine() -> AttendanceStateMachine:
    return AttendanceStateMachine()


@pytest.fixture
def registered() -> AttendanceRecord:
    return AttendanceRecord(record_id=1, participant_id=7, event_id=1)


def _check_in(sample, event, *, phase=WindowPhase.IN_PROGRESS, seconds_until_open=None):
    return CheckInRequested(
        sample=sample,
        classification=classify(sample, event),
        phase=phase,
        at=sample.timestamp,
        seconds_until_open=seconds_until_open,
    )


def _observe(sample, event):
    return LocationObserved(sample, classify(sample, event))


@pytest.fixture
def inside(machine, registered, sample_at, event) -> AttendanceRecord:
    return machine.apply(registered, _check_in(sample_at(10), event), event).record


def test_check_in_inside_geofence(machine, registered, sample_at, event, fixed_now):
    t = machine.apply(registered, _check_in(sample_at(10), event), event)
    assert t.record.state == AttendanceState.INSIDE
    assert t.record.checked_in_at == fixed_now
    assert t.record.last_distance_m == pytest.approx(10, abs=0.01)
    assert t.state_changed


def test_check_in_outside_geofence_is_rejected(machine, registered, sample_at, event):
    with pytest.raises(OutsideGeofence) as exc:
        machine.apply(registered, _check_in(sample_at(150), event), event)
    assert exc.value.radius_m == 100
    assert str(exc.value) == "You are 50m outside the 100m radius"


def test_window_is_checked_before_geofence(machine, registered, sample_at, event):
    with pytest.raises(WindowNotOpen) as exc:
        machine.apply(
            registered,
            _check_in(sample_at(150), event, phase=WindowPhase.NOT_YET_OPEN, seconds_until_open=600),
            event,
        )
    assert exc.value.seconds_until_open == 600


def test_check_in_after_end_is_rejected(machine, registered, sample_at, event):
    with pytest.raises(WindowNotOpen, match="Event has ended"):
        machine.apply(registered, _check_in(sample_at(0), event, phase=WindowPhase.ENDED), event)


def test_repeated_check_in_is_a_noop(machine, inside, sample_at, event):
    t = machine.apply(inside, _check_in(sample_at(20), event), event)
    assert not t.changed
    assert t.record is inside


def test_samples_before_check_in_are_ignored(machine, registered, sample_at, event):
    t = machine.apply(registered, _observe(sample_at(0), event), event)
    assert t.record is registered


def test_leaving_opens_an_episode(machine, inside, sample_at, event, clock):
    at = clock.advance(seconds=30)
    t = machine.apply(inside, _observe(sample_at(150), event), event)
    assert t.record.state == AttendanceState.OUTSIDE_OK
    assert t.record.outside_since == at
    assert t.alerts == ()


def test_warning_state_returns_inside(machine, inside, sample_at, event, clock):
    record = machine.apply(inside, _observe(sample_at(150), event), event).record
    clock.advance(seconds=500)
    t = machine.apply(record, HeartbeatElapsed(clock.now()), event)
    assert t.record.state == AttendanceState.OUTSIDE_WARNING
    assert [a.alert_type for a in t.alerts] == [AlertType.WARNING]

    clock.advance(seconds=30)
    back = machine.apply(t.record, _observe(sample_at(5), event), event).record
    assert back.state == AttendanceState.INSIDE
    assert back.outside_since is None
    assert back.cumulative_outside_s == 530


def test_out_of_order_sample_is_discarded(machine, inside, sample_at, event, fixed_now):
    late = sample_at(150, at=fixed_now - timedelta(seconds=5))
    t = machine.apply(inside, _observe(late, event), event)
    assert t.record is inside


def test_exceeding_limit_marks_absent(machine, inside, sample_at, event, clock):
    left_at = clock.advance(seconds=10)
    record = machine.apply(inside, _observe(sample_at(150), event), event).record
    at = left_at + timedelta(seconds=601)
    t = machine.apply(record, HeartbeatElapsed(at), event)

    assert t.record.state == AttendanceState.ABSENT
    assert t.record.checked_out_at == at
    assert t.record.checkout_reason == CheckOutReason.AUTO
    assert t.record.cumulative_outside_s == 601
    assert [a.alert_type for a in t.alerts] == [AlertType.WARNING, AlertType.EXCEEDED_LIMIT, AlertType.ABSENT]


def test_heartbeat_while_inside_does_nothing(machine, inside, event, fixed_now):
    t = machine.apply(inside, HeartbeatElapsed(fixed_now + timedelta(hours=2)), event)
    assert not t.changed


def test_window_end_checks_out_at_event_end(machine, inside, sample_at, event, clock):
    clock.advance(seconds=60)
    record = machine.apply(inside, _observe(sample_at(150), event), event).record
    ends_at = clock.now() + timedelta(seconds=100)
    t = machine.apply(record, WindowEnded(ends_at), event)
    assert t.record.state == AttendanceState.CHECKED_OUT
    assert t.record.checked_out_at == ends_at
    assert t.record.checkout_reason == CheckOutReason.AUTO
    assert t.record.cumulative_outside_s == 100


def test_window_end_leaves_registered_records_alone(machine, registered, event, fixed_now):
    assert not machine.apply(registered, WindowEnded(fixed_now), event).changed


def test_manual_check_out(machine, inside, event, clock):
    at = clock.advance(minutes=90)
    t = machine.apply(inside, CheckOutRequested(at=at), event)
    assert t.record.state == AttendanceState.CHECKED_OUT
    assert t.record.checked_out_at == at
    assert t.record.checkout_reason == CheckOutReason.MANUAL
    assert t.record.duration_minutes == 90


def test_check_out_before_check_in_is_invalid(machine, registered, event, fixed_now):
    with pytest.raises(ValidationError):
        machine.apply(registered, CheckOutRequested(at=fixed_now), event)


@pytest.mark.parametrize("state", [AttendanceState.ABSENT, AttendanceState.CHECKED_OUT])
def test_terminal_records_never_transition(machine, inside, sample_at, event, fixed_now, state):
    terminal = replace(inside, state=state, checked_out_at=fixed_now)
    signals = [
        _check_in(sample_at(0), event),
        _observe(sample_at(500), event),
        HeartbeatElapsed(fixed_now + timedelta(hours=1)),
        WindowEnded(fixed_now),
        CheckOutRequested(at=fixed_now),
    ]
    for signal in signals:
        with pytest.raises(AlreadyTerminal):
            machine.apply(terminal, signal, event)
