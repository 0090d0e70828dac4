from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional, Protocol

logger = logging.getLogger("geofence_attendance.notifications")


@dataclass(frozen=True)
class Notice:
    """Status/alert broadcast for participants and organizers.

    kind: checked_in, checked_out, left_geofence, returned, warning,
    exceeded_limit, absent, location_unavailable.
    """

    kind: str
    message: str
    at: datetime
    record_id: Optional[int] = None
    participant_id: Optional[int] = None
    event_id: Optional[int] = None
    payload: dict[str, Any] = field(default_factory=dict)


class NotificationSink(Protocol):
    def notify(self, notice: Notice) -> None:
        raise NotImplementedError


class LoggingNotificationSink(NotificationSink):
    """Default sink: delivery (push/toast/websocket) lives outside the engine."""

    def notify(self, notice: Notice) -> None:
        level = logging.WARNING if notice.kind in ("warning", "exceeded_limit", "absent") else logging.INFO
        logger.log(
            level,
            "[%s] record=%s participant=%s event=%s %s",
            notice.kind, notice.record_id, notice.participant_id, notice.event_id, notice.message,
        )
