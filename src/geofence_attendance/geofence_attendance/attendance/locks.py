from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator


class RecordLocks:
    """One lock per attendance record; different records never block each other."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[int, threading.Lock] = {}

    def _lock_for(self, record_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(record_id)
            if lock is None:
                lock = self._locks[record_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, record_id: int) -> Iterator[None]:
        lock = self._lock_for(int(record_id))
        with lock:
            yield

    def forget(self, record_id: int) -> None:
        """Drop the lock of a record nobody monitors anymore."""
        with self._guard:
            lock = self._locks.get(int(record_id))
            if lock is not None and not lock.locked():
                del self._locks[int(record_id)]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
