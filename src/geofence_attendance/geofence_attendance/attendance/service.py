from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, Optional

from ..common.datetime_utils import format_duration
from ..core.constants import DEFAULT_CAS_RETRIES
from ..core.enums import AlertType, AttendanceState, CheckOutReason, WindowPhase
from ..core.exceptions import (
    AlreadyTerminal,
    ConcurrentModification,
    DuplicateRecord,
    EventNotFound,
    ParticipantNotFound,
    RecordNotFound,
    ValidationError,
)
from ..events.model import Event
from ..events.repository import EventCatalog
from ..events.window import TimeWindowCalculator
from ..geofence.classifier import classify
from ..geofence.model import LocationSample
from ..monitoring.clock import ClockSource, SystemClock
from ..monitoring.notifications import LoggingNotificationSink, Notice, NotificationSink
from ..participants.repository import ParticipantRepository
from .locks import RecordLocks
from .model import AttendanceRecord, EventOverview, StatusSnapshot
from .repository import RecordStore
from .state_machine import (
    AttendanceStateMachine,
    CheckInRequested,
    CheckOutRequested,
    HeartbeatElapsed,
    LocationObserved,
    Signal,
    Transition,
    WindowEnded,
)

logger = logging.getLogger(__name__)

_ALERT_MESSAGES = {
    AlertType.WARNING: "Approaching the maximum time allowed outside the event area",
    AlertType.EXCEEDED_LIMIT: "Exceeded the maximum time allowed outside the event area",
    AlertType.ABSENT: "Marked absent",
}


class AttendanceService:
    """Single entry point for every attendance mutation.

    Transitions for one record are serialized by a per-record lock and written
    with a version compare-and-set, so concurrent samples, heartbeats and sweeps
    never apply on top of each other. Terminal records turn every mutation into
    a no-op that returns the record unchanged.
    """

    def __init__(
        self,
        records: RecordStore,
        events: EventCatalog,
        participants: Optional[ParticipantRepository] = None,
        *,
        clock: Optional[ClockSource] = None,
        notifications: Optional[NotificationSink] = None,
        machine: Optional[AttendanceStateMachine] = None,
        calculator: Optional[TimeWindowCalculator] = None,
        locks: Optional[RecordLocks] = None,
        max_retries: int = DEFAULT_CAS_RETRIES,
    ):
        self._records = records
        self._events = events
        self._participants = participants
        self._clock = clock or SystemClock()
        self._notifications = notifications or LoggingNotificationSink()
        self._machine = machine or AttendanceStateMachine()
        self._calculator = calculator or TimeWindowCalculator()
        self._locks = locks or RecordLocks()
        self._max_retries = max(1, int(max_retries))

    @property
    def calculator(self) -> TimeWindowCalculator:
        return self._calculator

    @property
    def locks(self) -> RecordLocks:
        return self._locks

    def _get_event(self, event_id: int) -> Event:
        event = self._events.get_by_id(event_id)
        if not event:
            raise EventNotFound(f"Event {event_id} not found")
        return event

    def _require_participant(self, participant_id: int) -> None:
        if self._participants is not None and not self._participants.get_by_id(participant_id):
            raise ParticipantNotFound(f"Participant {participant_id} not found")

    def _get_record(self, record_id: int) -> AttendanceRecord:
        record = self._records.get(record_id)
        if not record:
            raise RecordNotFound(f"Attendance record {record_id} not found")
        return record

    # ------------------------------------------------------------------
    # Registration / check-in
    # ------------------------------------------------------------------
    def register(self, participant_id: int, event_id: int) -> AttendanceRecord:
        """Create the `registered` record the automatic trigger watches (idempotent)."""
        self._get_event(event_id)
        self._require_participant(participant_id)

        existing = self._records.find_for(participant_id, event_id)
        if existing:
            return existing
        try:
            record = self._records.add(
                AttendanceRecord(record_id=0, participant_id=int(participant_id), event_id=int(event_id))
            )
        except DuplicateRecord:
            return self._records.find_for(participant_id, event_id)
        logger.info("record=%s registered participant=%s event=%s", record.record_id, participant_id, event_id)
        return record

    def check_in(self, participant_id: int, event_id: int, sample: LocationSample) -> AttendanceRecord:
        """Check a participant in from a location sample.

        Raises WindowNotOpen, OutsideGeofence or InvalidGeometry; a record
        that is already checked in or terminal is returned unchanged.
        """
        event = self._get_event(event_id)
        self._require_participant(participant_id)
        classification = classify(sample, event)

        for _ in range(self._max_retries):
            existing = self._records.find_for(participant_id, event_id)
            if existing is not None:
                return self._transition(existing.record_id, lambda now: self._check_in_signal(event, sample, classification, now))

            now = self._clock.now()
            draft = AttendanceRecord(record_id=0, participant_id=int(participant_id), event_id=int(event_id))
            transition = self._machine.apply(draft, self._check_in_signal(event, sample, classification, now), event)
            try:
                stored = self._records.add(transition.record)
            except DuplicateRecord:
                # Someone registered or checked in concurrently: go through the stored record.
                continue
            self._publish(event, replace(transition, record=stored))
            return stored

        raise ConcurrentModification(f"Could not check in participant {participant_id} for event {event_id}")

    def _check_in_signal(self, event: Event, sample: LocationSample, classification, now: datetime) -> CheckInRequested:
        phase = self._calculator.phase(event, now)
        seconds = self._calculator.seconds_until_open(event, now) if phase == WindowPhase.NOT_YET_OPEN else None
        return CheckInRequested(
            sample=sample,
            classification=classification,
            phase=phase,
            at=now,
            seconds_until_open=seconds,
        )

    # ------------------------------------------------------------------
    # Monitoring inputs
    # ------------------------------------------------------------------
    def observe_location(self, record_id: int, sample: LocationSample) -> AttendanceRecord:
        record = self._get_record(record_id)
        event = self._get_event(record.event_id)
        classification = classify(sample, event)
        if record.state.is_checked_in and self._calculator.phase(event, self._clock.now()) == WindowPhase.ENDED:
            # The event end wins over escalation from late samples.
            return self.check_out(record_id, CheckOutReason.AUTO)
        return self._transition(record_id, lambda now: LocationObserved(sample, classification))

    def heartbeat(self, record_id: int) -> AttendanceRecord:
        """Re-check escalation (and the event end) even without new samples."""
        record = self._get_record(record_id)
        if record.is_terminal:
            return record
        event = self._get_event(record.event_id)
        now = self._clock.now()
        if record.state.is_checked_in and self._calculator.phase(event, now) == WindowPhase.ENDED:
            return self.check_out(record_id, CheckOutReason.AUTO)
        return self._transition(record_id, lambda at: HeartbeatElapsed(at))

    # ------------------------------------------------------------------
    # Check-out
    # ------------------------------------------------------------------
    def check_out(self, record_id: int, reason: CheckOutReason = CheckOutReason.MANUAL) -> AttendanceRecord:
        """Manual check-out stamps now; automatic check-out stamps the event end."""
        reason = CheckOutReason(reason)
        record = self._get_record(record_id)
        if record.is_terminal:
            logger.debug("record=%s check-out ignored, already %s", record_id, record.state.value)
            return record

        if reason == CheckOutReason.AUTO:
            event = self._get_event(record.event_id)
            ends_at = self._calculator.window_for(event).ends_at
            if record.state == AttendanceState.REGISTERED:
                return record
            return self._transition(record_id, lambda now: WindowEnded(ends_at))
        return self._transition(record_id, lambda now: CheckOutRequested(at=now, reason=reason))

    # ------------------------------------------------------------------
    # Reads and bookkeeping
    # ------------------------------------------------------------------
    def current_status(self, record_id: int) -> StatusSnapshot:
        return self._snapshot(self._get_record(record_id), self._clock.now())

    def event_overview(self, event_id: int) -> EventOverview:
        self._get_event(event_id)
        now = self._clock.now()
        snapshots = tuple(
            self._snapshot(r, now)
            for r in sorted(self._records.list_for_event(event_id), key=lambda r: r.record_id)
        )

        def count(*states: AttendanceState) -> int:
            return sum(1 for s in snapshots if s.state in states)

        return EventOverview(
            event_id=int(event_id),
            registered=count(AttendanceState.REGISTERED),
            inside=count(AttendanceState.INSIDE),
            outside=count(AttendanceState.OUTSIDE_OK),
            warning=count(AttendanceState.OUTSIDE_WARNING),
            absent=count(AttendanceState.ABSENT),
            checked_out=count(AttendanceState.CHECKED_OUT),
            participants=snapshots,
        )

    def acknowledge_alert(self, record_id: int, alert_id: str) -> AttendanceRecord:
        """Mark one alert as acknowledged. Allowed on terminal records too."""
        with self._locks.hold(record_id):
            for _ in range(self._max_retries):
                record = self._get_record(record_id)
                if not any(a.alert_id == alert_id for a in record.alerts):
                    raise ValidationError(f"Alert {alert_id} not found on record {record_id}")
                alerts = tuple(
                    replace(a, acknowledged=True) if a.alert_id == alert_id else a for a in record.alerts
                )
                updated = replace(record, alerts=alerts, version=record.version + 1)
                if updated.alerts == record.alerts:
                    return record
                if self._records.compare_and_set(updated, expected_version=record.version):
                    return updated
        raise ConcurrentModification(f"Could not acknowledge alert {alert_id} on record {record_id}")

    def _snapshot(self, record: AttendanceRecord, now: datetime) -> StatusSnapshot:
        # The episode clock stops once the record is terminal.
        at = now if not record.is_terminal else (record.checked_out_at or now)
        is_inside = None
        if record.state.is_checked_in:
            is_inside = record.state == AttendanceState.INSIDE
        return StatusSnapshot(
            record_id=record.record_id,
            participant_id=record.participant_id,
            event_id=record.event_id,
            state=record.state,
            is_inside=is_inside,
            distance_m=record.last_distance_m,
            time_outside_seconds=record.time_outside_seconds(at),
            episode_seconds=record.episode_seconds(at),
            checked_in_at=record.checked_in_at,
            checked_out_at=record.checked_out_at,
            last_location_at=record.last_location_at,
            unacknowledged_alerts=len(record.unacknowledged_alerts()),
        )

    # ------------------------------------------------------------------
    # Serialized transition application
    # ------------------------------------------------------------------
    def _transition(self, record_id: int, build: Callable[[datetime], Signal]) -> AttendanceRecord:
        with self._locks.hold(record_id):
            for attempt in range(self._max_retries):
                record = self._get_record(record_id)
                event = self._get_event(record.event_id)
                try:
                    transition = self._machine.apply(record, build(self._clock.now()), event)
                except AlreadyTerminal:
                    logger.debug("record=%s mutation ignored, already %s", record_id, record.state.value)
                    return record

                if not transition.changed:
                    return record

                updated = replace(transition.record, version=record.version + 1)
                if self._records.compare_and_set(updated, expected_version=record.version):
                    self._publish(event, replace(transition, record=updated))
                    return updated
                logger.info("record=%s version conflict (attempt %s), retrying", record_id, attempt + 1)

        raise ConcurrentModification(f"Attendance record {record_id} kept changing")

    def _publish(self, event: Event, transition: Transition) -> None:
        record = transition.record
        previous = transition.previous
        if transition.state_changed:
            logger.info(
                "record=%s participant=%s event=%s state %s -> %s",
                record.record_id, record.participant_id, record.event_id,
                previous.state.value, record.state.value,
            )

        notices = []
        if transition.state_changed:
            notices.extend(self._state_notices(event, previous, record))
        for alert in transition.alerts:
            notices.append(
                self._notice(alert.alert_type.value, _ALERT_MESSAGES[alert.alert_type], record, alert.created_at,
                             alert_id=alert.alert_id)
            )

        for notice in notices:
            try:
                self._notifications.notify(notice)
            except Exception:
                logger.exception("notification sink failed for record=%s", record.record_id)

    def _state_notices(self, event: Event, previous: AttendanceRecord, record: AttendanceRecord) -> list[Notice]:
        now = self._clock.now()
        if previous.state == AttendanceState.REGISTERED and record.state == AttendanceState.INSIDE:
            punctuality = self._calculator.punctuality(event, record.checked_in_at)
            return [self._notice("checked_in", f"Checked in to {event.title}", record, record.checked_in_at,
                                 punctuality=punctuality.value)]
        if record.state == AttendanceState.CHECKED_OUT:
            return [self._notice("checked_out", f"Checked out of {event.title}", record, record.checked_out_at,
                                 reason=record.checkout_reason.value, duration_minutes=record.duration_minutes)]
        if previous.state == AttendanceState.INSIDE and record.state.is_outside:
            return [self._notice("left_geofence", f"Left the area of {event.title}", record,
                                 record.outside_since or now)]
        if previous.state.is_outside and record.state == AttendanceState.INSIDE:
            return [self._notice("returned", f"Returned to {event.title} after "
                                 f"{format_duration(record.cumulative_outside_s)} outside in total",
                                 record, record.last_location_at or now)]
        return []

    @staticmethod
    def _notice(kind: str, message: str, record: AttendanceRecord, at: datetime, **payload) -> Notice:
        return Notice(
            kind=kind,
            message=message,
            at=at,
            record_id=record.record_id,
            participant_id=record.participant_id,
            event_id=record.event_id,
            payload=payload,
        )
