"""Automatic check-in/check-out driven by live location and the event clock.

For every non-terminal record of an event whose window is open, a monitoring
session owns two resources: a live location subscription and a heartbeat
timer. Both are released on every exit path (terminal record, event ended,
explicit stop, shutdown).
"""
from __future__ import annotations

import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from functools import partial
from typing import Optional, Protocol

from ..attendance.model import AttendanceRecord
from ..attendance.repository import RecordStore
from ..attendance.service import AttendanceService
from ..core.constants import (
    DEFAULT_HEARTBEAT_INTERVAL_SECONDS,
    DEFAULT_LOCATION_FAILURE_THRESHOLD,
    DEFAULT_LOCATION_TIMEOUT_SECONDS,
)
from ..core.enums import AttendanceState, CheckOutReason, WindowPhase
from ..core.exceptions import DomainError, LocationUnavailable, OutsideGeofence
from ..events.repository import EventCatalog
from .clock import ClockSource, SystemClock
from .location import LocationSource, Position, SubscriptionHandle
from .notifications import LoggingNotificationSink, Notice, NotificationSink

logger = logging.getLogger(__name__)


class Timers(Protocol):
    def start(self, record_id: int, func, interval_s: float) -> None:
        raise NotImplementedError

    def stop(self, record_id: int) -> bool:
        raise NotImplementedError


@dataclass
class MonitoringSession:
    record_id: int
    participant_id: int
    event_id: int
    subscription: Optional[SubscriptionHandle] = None
    last_fix_at: Optional[datetime] = None
    failures: int = 0


@dataclass
class SyncReport:
    started: list[int] = field(default_factory=list)
    stopped: list[int] = field(default_factory=list)
    checked_out: list[int] = field(default_factory=list)


class AutoCheckTrigger:
    def __init__(
        self,
        service: AttendanceService,
        records: RecordStore,
        events: EventCatalog,
        location_source: LocationSource,
        timers: Timers,
        *,
        clock: Optional[ClockSource] = None,
        notifications: Optional[NotificationSink] = None,
        heartbeat_interval_s: float = DEFAULT_HEARTBEAT_INTERVAL_SECONDS,
        location_timeout_s: float = DEFAULT_LOCATION_TIMEOUT_SECONDS,
        failure_threshold: int = DEFAULT_LOCATION_FAILURE_THRESHOLD,
    ):
        self._service = service
        self._records = records
        self._events = events
        self._location = location_source
        self._timers = timers
        self._clock = clock or SystemClock()
        self._notifications = notifications or LoggingNotificationSink()
        self._heartbeat_interval_s = float(heartbeat_interval_s)
        self._location_timeout_s = float(location_timeout_s)
        self._failure_threshold = max(1, int(failure_threshold))

        self._lock = threading.Lock()
        self._sessions: dict[int, MonitoringSession] = {}

    def __enter__(self) -> "AutoCheckTrigger":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    @property
    def monitored_record_ids(self) -> set[int]:
        with self._lock:
            return set(self._sessions)

    def session(self, record_id: int) -> Optional[MonitoringSession]:
        with self._lock:
            return self._sessions.get(int(record_id))

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    def sync(self) -> SyncReport:
        """Start sessions for open windows, check out and release ended ones."""
        report = SyncReport()
        now = self._clock.now()

        by_event: dict[int, list[AttendanceRecord]] = defaultdict(list)
        for record in self._records.list_open():
            by_event[record.event_id].append(record)

        keep: set[int] = set()
        for event_id, records in by_event.items():
            event = self._events.get_by_id(event_id)
            if not event:
                continue
            try:
                phase = self._service.calculator.phase(event, now)
            except DomainError:
                logger.exception("cannot compute window for event=%s", event_id)
                continue

            for record in records:
                if phase == WindowPhase.ENDED:
                    if record.state.is_checked_in:
                        try:
                            self._service.check_out(record.record_id, CheckOutReason.AUTO)
                            report.checked_out.append(record.record_id)
                        except DomainError as exc:
                            logger.warning("auto check-out failed for record=%s: %s", record.record_id, exc)
                elif phase.accepts_check_in:
                    keep.add(record.record_id)
                    if self.start(record):
                        report.started.append(record.record_id)

        for record_id in self.monitored_record_ids - keep:
            if self.stop(record_id):
                report.stopped.append(record_id)

        if report.started or report.stopped or report.checked_out:
            logger.info(
                "monitor sync: started=%s stopped=%s checked_out=%s",
                len(report.started), len(report.stopped), len(report.checked_out),
            )
        return report

    def start(self, record: AttendanceRecord) -> bool:
        if record.is_terminal:
            return False
        with self._lock:
            if record.record_id in self._sessions:
                return False
            session = MonitoringSession(
                record_id=record.record_id,
                participant_id=record.participant_id,
                event_id=record.event_id,
            )
            self._sessions[record.record_id] = session

        try:
            session.subscription = self._location.watch_location(
                record.participant_id,
                partial(self.handle_position, record.record_id),
                partial(self.handle_error, record.record_id),
            )
            self._timers.start(record.record_id, partial(self.heartbeat, record.record_id), self._heartbeat_interval_s)
        except Exception:
            self.stop(record.record_id)
            raise

        logger.info("monitoring started for record=%s participant=%s", record.record_id, record.participant_id)
        return True

    def stop(self, record_id: int) -> bool:
        with self._lock:
            session = self._sessions.pop(int(record_id), None)
        if session is None:
            return False

        try:
            if session.subscription is not None:
                session.subscription.cancel()
        finally:
            self._timers.stop(session.record_id)
            self._service.locks.forget(session.record_id)
        logger.info("monitoring stopped for record=%s", session.record_id)
        return True

    def shutdown(self) -> None:
        for record_id in self.monitored_record_ids:
            try:
                self.stop(record_id)
            except Exception:
                logger.exception("failed to release monitoring for record=%s", record_id)

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------
    def handle_position(self, record_id: int, position: Position) -> Optional[AttendanceRecord]:
        with self._lock:
            session = self._sessions.get(int(record_id))
            if session is None:
                return None
            session.last_fix_at = self._clock.now()
            session.failures = 0

        record = self._records.get(record_id)
        if record is None or record.is_terminal:
            self.stop(record_id)
            return record
        event = self._events.get_by_id(record.event_id)
        if event is None:
            return record

        sample = position.to_sample(participant_id=record.participant_id, event_id=record.event_id)
        try:
            phase = self._service.calculator.phase(event, self._clock.now())
            if phase == WindowPhase.ENDED:
                result = self._service.check_out(record_id, CheckOutReason.AUTO)
            elif record.state == AttendanceState.REGISTERED:
                if not phase.accepts_check_in:
                    return record
                try:
                    result = self._service.check_in(record.participant_id, record.event_id, sample)
                except OutsideGeofence as exc:
                    logger.debug("record=%s not checked in yet: %s", record_id, exc)
                    return record
            else:
                result = self._service.observe_location(record_id, sample)
        except DomainError as exc:
            logger.warning("record=%s sample not applied: %s", record_id, exc)
            return record

        if result.is_terminal or phase == WindowPhase.ENDED:
            self.stop(record_id)
        return result

    def handle_error(self, record_id: int, error: LocationUnavailable) -> None:
        with self._lock:
            session = self._sessions.get(int(record_id))
            if session is None:
                return
            session.failures += 1
            failures = session.failures
        logger.warning(
            "location unavailable for record=%s participant=%s (%s), attempt %s",
            record_id, session.participant_id, error.reason, failures,
        )
        if failures % self._failure_threshold:
            return

        notice = Notice(
            kind="location_unavailable",
            message=f"Location unavailable ({error.reason}); attendance cannot be updated until a fix is received",
            at=self._clock.now(),
            record_id=session.record_id,
            participant_id=session.participant_id,
            event_id=session.event_id,
            payload={"reason": error.reason, "failures": failures},
        )
        try:
            self._notifications.notify(notice)
        except Exception:
            logger.exception("notification sink failed for record=%s", record_id)

    def heartbeat(self, record_id: int) -> None:
        """Force a fix when the stream went quiet, then re-check escalation."""
        try:
            self._heartbeat(record_id)
        except Exception:
            logger.exception("heartbeat failed for record=%s", record_id)

    def _heartbeat(self, record_id: int) -> None:
        with self._lock:
            session = self._sessions.get(int(record_id))
            if session is None:
                return
            last_fix_at = session.last_fix_at

        now = self._clock.now()
        quiet = last_fix_at is None or (now - last_fix_at).total_seconds() >= self._heartbeat_interval_s
        if quiet:
            # No record lock is held while waiting for a fix.
            try:
                position = self._location.get_current_location(
                    session.participant_id, timeout_s=self._location_timeout_s
                )
            except LocationUnavailable as exc:
                self.handle_error(record_id, exc)
            else:
                self.handle_position(record_id, position)

        if self.session(record_id) is None:
            return
        try:
            record = self._service.heartbeat(record_id)
        except DomainError as exc:
            logger.warning("heartbeat re-check failed for record=%s: %s", record_id, exc)
            return
        if record.is_terminal:
            self.stop(record_id)
