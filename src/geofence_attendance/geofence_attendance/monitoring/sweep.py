from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional

from ..attendance.model import AttendanceRecord
from ..attendance.repository import RecordStore
from ..attendance.service import AttendanceService
from ..core.enums import AttendanceState, CheckOutReason, WindowPhase
from ..core.exceptions import DomainError
from ..events.repository import EventCatalog
from .clock import ClockSource, SystemClock

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    events_processed: int = 0
    checked_out: int = 0
    errors: int = 0
    results: list[dict] = field(default_factory=list)


class SweepJob:
    """Safety net: force check-out of checked-in records whose event has ended.

    Runs independently of live monitoring so records still close when the
    client never reported again. Re-running it is a no-op.
    """

    def __init__(
        self,
        service: AttendanceService,
        records: RecordStore,
        events: EventCatalog,
        *,
        clock: Optional[ClockSource] = None,
    ):
        self._service = service
        self._records = records
        self._events = events
        self._clock = clock or SystemClock()

    def run(self) -> SweepReport:
        report = SweepReport()
        now = self._clock.now()

        by_event: dict[int, list[AttendanceRecord]] = defaultdict(list)
        for record in self._records.list_open():
            if record.state.is_checked_in:
                by_event[record.event_id].append(record)

        for event_id, records in by_event.items():
            event = self._events.get_by_id(event_id)
            if not event:
                logger.warning("sweep: event=%s not found for %s open record(s)", event_id, len(records))
                continue
            try:
                if self._service.calculator.phase(event, now) != WindowPhase.ENDED:
                    continue
            except DomainError:
                logger.exception("sweep: cannot compute window for event=%s", event_id)
                report.errors += 1
                continue

            report.events_processed += 1
            checked_out = 0
            for record in records:
                try:
                    result = self._service.check_out(record.record_id, CheckOutReason.AUTO)
                except DomainError as exc:
                    logger.error("sweep: check-out failed for record=%s: %s", record.record_id, exc)
                    report.errors += 1
                    continue
                if result.state == AttendanceState.CHECKED_OUT and result.version != record.version:
                    checked_out += 1

            report.checked_out += checked_out
            report.results.append(
                {"event_id": event.event_id, "event_title": event.title, "participants_checked_out": checked_out}
            )
            logger.info("sweep: event=%s %s participant(s) auto-checked out", event.event_id, checked_out)

        return report
