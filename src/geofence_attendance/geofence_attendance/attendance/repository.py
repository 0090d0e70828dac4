from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import AttendanceRecord


class RecordStore(Protocol):
    """Atomic read / compare-and-set access to attendance records."""

    def get(self, record_id: int) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def find_for(self, participant_id: int, event_id: int) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def add(self, record: AttendanceRecord) -> AttendanceRecord:
        """Insert a new record and return it with its assigned id.

        Raises DuplicateRecord when the participant already has a record for the event.
        """

        raise NotImplementedError

    def compare_and_set(self, record: AttendanceRecord, *, expected_version: int) -> bool:
        """Replace the stored record only if its version still equals `expected_version`."""

        raise NotImplementedError

    def list_for_event(self, event_id: int) -> Sequence[AttendanceRecord]:
        raise NotImplementedError

    def list_open(self) -> Sequence[AttendanceRecord]:
        """Records that are not terminal (registered or checked in), across events."""

        raise NotImplementedError
