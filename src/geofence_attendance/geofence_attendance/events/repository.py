from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .model import Event


class EventCatalog(Protocol):
    """Read-only access to event definitions (geofence and windows)."""

    def get_by_id(self, event_id: int) -> Optional[Event]:
        raise NotImplementedError

    def list_events(self) -> Sequence[Event]:
        raise NotImplementedError
