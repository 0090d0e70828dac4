from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional

from ..core.enums import AlertType, AttendanceState, CheckOutReason


@dataclass(frozen=True)
class Alert:
    """Append-only alert attached to an attendance record."""

    alert_type: AlertType
    created_at: datetime
    acknowledged: bool = False
    alert_id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class AttendanceRecord:
    """Domain entity: one participant's attendance at one event.

    Only the state machine produces new versions of a record; stores persist
    them with a compare-and-set on `version`.
    """

    record_id: int
    participant_id: int
    event_id: int
    state: AttendanceState = AttendanceState.REGISTERED
    checked_in_at: Optional[datetime] = None
    checked_out_at: Optional[datetime] = None
    checkout_reason: Optional[CheckOutReason] = None
    last_latitude: Optional[float] = None
    last_longitude: Optional[float] = None
    last_accuracy: Optional[float] = None
    last_location_at: Optional[datetime] = None
    last_distance_m: Optional[float] = None
    cumulative_outside_s: float = 0.0
    outside_since: Optional[datetime] = None
    alerts: tuple[Alert, ...] = ()
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def duration_minutes(self) -> Optional[int]:
        if self.checked_in_at is None or self.checked_out_at is None:
            return None
        return round((self.checked_out_at - self.checked_in_at).total_seconds() / 60)

    def episode_seconds(self, now: datetime) -> float:
        if self.outside_since is None:
            return 0.0
        return max(0.0, (now - self.outside_since).total_seconds())

    def time_outside_seconds(self, now: datetime) -> float:
        """Cumulative time outside including the running episode."""
        return self.cumulative_outside_s + self.episode_seconds(now)

    def with_alerts(self, *alerts: Alert) -> "AttendanceRecord":
        return replace(self, alerts=self.alerts + tuple(alerts))

    def unacknowledged_alerts(self) -> tuple[Alert, ...]:
        return tuple(a for a in self.alerts if not a.acknowledged)


@dataclass(frozen=True)
class StatusSnapshot:
    """Read-model returned by current_status()."""

    record_id: int
    participant_id: int
    event_id: int
    state: AttendanceState
    is_inside: Optional[bool]
    distance_m: Optional[float]
    time_outside_seconds: float
    episode_seconds: float
    checked_in_at: Optional[datetime]
    checked_out_at: Optional[datetime]
    last_location_at: Optional[datetime]
    unacknowledged_alerts: int

    def to_dict(self) -> dict:
        return {
            "record_id": self.record_id,
            "participant_id": self.participant_id,
            "event_id": self.event_id,
            "state": self.state.value,
            "is_inside": self.is_inside,
            "distance_m": round(self.distance_m) if self.distance_m is not None else None,
            "time_outside_seconds": int(self.time_outside_seconds),
            "episode_seconds": int(self.episode_seconds),
            "checked_in_at": self.checked_in_at.isoformat() if self.checked_in_at else None,
            "checked_out_at": self.checked_out_at.isoformat() if self.checked_out_at else None,
            "last_location_at": self.last_location_at.isoformat() if self.last_location_at else None,
            "unacknowledged_alerts": self.unacknowledged_alerts,
        }


@dataclass(frozen=True)
class EventOverview:
    """Per-event location summary for organizers."""

    event_id: int
    registered: int
    inside: int
    outside: int
    warning: int
    absent: int
    checked_out: int
    participants: tuple[StatusSnapshot, ...]

    @property
    def total(self) -> int:
        return len(self.participants)

    def to_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "summary": {
                "total": self.total,
                "registered": self.registered,
                "inside": self.inside,
                "outside": self.outside,
                "warning": self.warning,
                "absent": self.absent,
                "checked_out": self.checked_out,
            },
            "participants": [p.to_dict() for p in self.participants],
        }
