from __future__ import annotations

import threading
from typing import Iterable, Optional, Sequence

from .model import Event
from .repository import EventCatalog


class InMemoryEventCatalog(EventCatalog):
    def __init__(self, events: Iterable[Event] = ()):
        self._lock = threading.Lock()
        self._events: dict[int, Event] = {e.event_id: e for e in events}

    def get_by_id(self, event_id: int) -> Optional[Event]:
        with self._lock:
            return self._events.get(int(event_id))

    def list_events(self) -> Sequence[Event]:
        with self._lock:
            return list(self._events.values())

    def put(self, event: Event) -> None:
        """Organizer-side upsert (outside the monitoring engine)."""
        with self._lock:
            self._events[event.event_id] = event
