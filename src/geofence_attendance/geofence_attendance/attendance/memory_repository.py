from __future__ import annotations

import threading
from dataclasses import replace
from typing import Optional, Sequence

from ..core.exceptions import DuplicateRecord
from .model import AttendanceRecord
from .repository import RecordStore


class InMemoryRecordStore(RecordStore):
    """Thread-safe process-local store."""

    def __init__(self):
        self._lock = threading.Lock()
        self._by_id: dict[int, AttendanceRecord] = {}
        self._by_key: dict[tuple[int, int], int] = {}
        self._id = 0

    def get(self, record_id: int) -> Optional[AttendanceRecord]:
        with self._lock:
            return self._by_id.get(int(record_id))

    def find_for(self, participant_id: int, event_id: int) -> Optional[AttendanceRecord]:
        with self._lock:
            record_id = self._by_key.get((int(participant_id), int(event_id)))
            return self._by_id.get(record_id) if record_id is not None else None

    def add(self, record: AttendanceRecord) -> AttendanceRecord:
        key = (record.participant_id, record.event_id)
        with self._lock:
            if key in self._by_key:
                raise DuplicateRecord(f"Participant {key[0]} already has a record for event {key[1]}")
            self._id += 1
            stored = replace(record, record_id=self._id, version=0)
            self._by_id[stored.record_id] = stored
            self._by_key[key] = stored.record_id
            return stored

    def compare_and_set(self, record: AttendanceRecord, *, expected_version: int) -> bool:
        with self._lock:
            current = self._by_id.get(record.record_id)
            if current is None or current.version != expected_version:
                return False
            self._by_id[record.record_id] = record
            return True

    def list_for_event(self, event_id: int) -> Sequence[AttendanceRecord]:
        with self._lock:
            return [r for r in self._by_id.values() if r.event_id == int(event_id)]

    def list_open(self) -> Sequence[AttendanceRecord]:
        with self._lock:
            return [r for r in self._by_id.values() if not r.is_terminal]
