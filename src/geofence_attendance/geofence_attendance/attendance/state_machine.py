"""Finite-state machine for one attendance record.

registered -> checked-in:inside <-> checked-in:outside-ok -> checked-in:outside-warning -> absent
any checked-in state -> checked-out

`absent` and `checked-out` are terminal. The machine is pure: it takes a
record and a signal and returns the next record plus the alerts it raised.
Persisting the result is the caller's job.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Union

from ..core.enums import AlertType, AttendanceState, CheckOutReason, EscalationLevel, WindowPhase
from ..core.exceptions import AlreadyTerminal, OutsideGeofence, ValidationError, WindowNotOpen
from ..events.model import Event
from ..geofence.model import Classification, LocationSample
from .model import Alert, AttendanceRecord
from .outside_tracker import OutsideTracker

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckInRequested:
    sample: LocationSample
    classification: Classification
    phase: WindowPhase
    at: datetime
    seconds_until_open: Optional[float] = None


@dataclass(frozen=True)
class LocationObserved:
    sample: LocationSample
    classification: Classification


@dataclass(frozen=True)
class HeartbeatElapsed:
    at: datetime


@dataclass(frozen=True)
class WindowEnded:
    ends_at: datetime


@dataclass(frozen=True)
class CheckOutRequested:
    at: datetime
    reason: CheckOutReason = CheckOutReason.MANUAL


Signal = Union[CheckInRequested, LocationObserved, HeartbeatElapsed, WindowEnded, CheckOutRequested]


@dataclass(frozen=True)
class Transition:
    previous: AttendanceRecord
    record: AttendanceRecord
    alerts: tuple[Alert, ...] = ()

    @property
    def changed(self) -> bool:
        return self.record != self.previous

    @property
    def state_changed(self) -> bool:
        return self.record.state != self.previous.state


class AttendanceStateMachine:
    def __init__(self, tracker: Optional[OutsideTracker] = None):
        self._tracker = tracker or OutsideTracker()
        self._handlers = {
            CheckInRequested: self._on_check_in,
            LocationObserved: self._on_location,
            HeartbeatElapsed: self._on_heartbeat,
            WindowEnded: self._on_window_ended,
            CheckOutRequested: self._on_check_out,
        }

    @property
    def tracker(self) -> OutsideTracker:
        return self._tracker

    def apply(self, record: AttendanceRecord, signal: Signal, event: Event) -> Transition:
        # Terminal check comes before anything else.
        if record.is_terminal:
            raise AlreadyTerminal(record)

        handler = self._handlers.get(type(signal))
        if handler is None:
            raise TypeError(f"Unsupported signal {type(signal).__name__}")
        return handler(record, signal, event)

    def _on_check_in(self, record: AttendanceRecord, signal: CheckInRequested, event: Event) -> Transition:
        if record.state != AttendanceState.REGISTERED:
            # Already checked in: repeated requests are no-ops.
            return Transition(record, record)

        if not signal.phase.accepts_check_in:
            seconds = signal.seconds_until_open if signal.phase == WindowPhase.NOT_YET_OPEN else None
            raise WindowNotOpen(signal.phase, seconds)

        if not signal.classification.is_inside:
            raise OutsideGeofence(signal.classification.distance_m, signal.classification.radius_m)

        sample = signal.sample
        new = replace(
            record,
            state=AttendanceState.INSIDE,
            checked_in_at=signal.at,
            last_latitude=sample.latitude,
            last_longitude=sample.longitude,
            last_accuracy=sample.accuracy,
            last_location_at=sample.timestamp,
            last_distance_m=signal.classification.distance_m,
            outside_since=None,
        )
        return Transition(record, new)

    def _on_location(self, record: AttendanceRecord, signal: LocationObserved, event: Event) -> Transition:
        if not record.state.is_checked_in:
            return Transition(record, record)

        sample = signal.sample
        if record.last_location_at is not None and sample.timestamp < record.last_location_at:
            logger.debug(
                "record=%s discarded out-of-order sample at %s (last %s)",
                record.record_id, sample.timestamp.isoformat(), record.last_location_at.isoformat(),
            )
            return Transition(record, record)

        new = replace(
            record,
            last_latitude=sample.latitude,
            last_longitude=sample.longitude,
            last_accuracy=sample.accuracy,
            last_location_at=sample.timestamp,
            last_distance_m=signal.classification.distance_m,
        )

        inside = signal.classification.is_inside
        if record.state == AttendanceState.INSIDE and not inside:
            new = replace(self._tracker.open_episode(new, sample.timestamp), state=AttendanceState.OUTSIDE_OK)
        elif record.state.is_outside and inside:
            new = replace(self._tracker.close_episode(new, sample.timestamp), state=AttendanceState.INSIDE)
            return Transition(record, new)

        return self._escalate(record, new, event, sample.timestamp)

    def _on_heartbeat(self, record: AttendanceRecord, signal: HeartbeatElapsed, event: Event) -> Transition:
        if not record.state.is_outside:
            return Transition(record, record)
        return self._escalate(record, record, event, signal.at)

    def _on_window_ended(self, record: AttendanceRecord, signal: WindowEnded, event: Event) -> Transition:
        if not record.state.is_checked_in:
            return Transition(record, record)
        return Transition(record, self._check_out(record, signal.ends_at, CheckOutReason.AUTO))

    def _on_check_out(self, record: AttendanceRecord, signal: CheckOutRequested, event: Event) -> Transition:
        if not record.state.is_checked_in:
            raise ValidationError("Participant has not checked in yet")
        return Transition(record, self._check_out(record, signal.at, signal.reason))

    def _check_out(self, record: AttendanceRecord, at: datetime, reason: CheckOutReason) -> AttendanceRecord:
        closed = self._tracker.close_episode(record, at)
        return replace(
            closed,
            state=AttendanceState.CHECKED_OUT,
            checked_out_at=at,
            checkout_reason=reason,
        )

    def _escalate(
        self,
        previous: AttendanceRecord,
        record: AttendanceRecord,
        event: Event,
        at: datetime,
    ) -> Transition:
        level = self._tracker.evaluate(record, event, at)
        alerts: list[Alert] = []

        if record.state == AttendanceState.OUTSIDE_OK and level >= EscalationLevel.WARNING:
            alerts.append(Alert(alert_type=AlertType.WARNING, created_at=at))
            record = replace(record, state=AttendanceState.OUTSIDE_WARNING)

        if record.state == AttendanceState.OUTSIDE_WARNING and level >= EscalationLevel.EXCEEDED:
            alerts.append(Alert(alert_type=AlertType.EXCEEDED_LIMIT, created_at=at))
            alerts.append(Alert(alert_type=AlertType.ABSENT, created_at=at))
            record = replace(
                self._tracker.close_episode(record, at),
                state=AttendanceState.ABSENT,
                checked_out_at=at,
                checkout_reason=CheckOutReason.AUTO,
            )

        if alerts:
            record = record.with_alerts(*alerts)
        return Transition(previous, record, tuple(alerts))
