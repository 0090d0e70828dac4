from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from ..common.validators import require_fraction
from ..core.constants import DEFAULT_WARNING_FRACTION
from ..core.enums import EscalationLevel
from ..events.model import Event
from .model import AttendanceRecord


class OutsideTracker:
    """Episode clock and escalation thresholds for time spent outside the geofence.

    The episode clock restarts every time the participant leaves; the
    cumulative counter only ever grows and is used for reporting.
    """

    def __init__(self, *, warning_fraction: float = DEFAULT_WARNING_FRACTION):
        self._warning_fraction = require_fraction(warning_fraction, "warning_fraction")

    @property
    def warning_fraction(self) -> float:
        return self._warning_fraction

    def thresholds(self, event: Event) -> tuple[float, float]:
        limit = float(event.max_time_outside_s)
        return limit * self._warning_fraction, limit

    def evaluate(self, record: AttendanceRecord, event: Event, now: datetime) -> EscalationLevel:
        if record.outside_since is None:
            return EscalationLevel.NONE

        elapsed = record.episode_seconds(now)
        warning_at, limit = self.thresholds(event)
        if elapsed >= limit:
            return EscalationLevel.EXCEEDED
        if elapsed >= warning_at:
            return EscalationLevel.WARNING
        return EscalationLevel.NONE

    def open_episode(self, record: AttendanceRecord, at: datetime) -> AttendanceRecord:
        if record.outside_since is not None:
            return record
        return replace(record, outside_since=at)

    def close_episode(self, record: AttendanceRecord, at: datetime) -> AttendanceRecord:
        if record.outside_since is None:
            return record
        return replace(
            record,
            cumulative_outside_s=record.cumulative_outside_s + record.episode_seconds(at),
            outside_since=None,
        )
