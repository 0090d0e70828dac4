"""Check-in/check-out windows of an event.

All local wall-clock values are resolved through the event's own timezone
before being compared with the (timezone-aware) current instant.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone

from ..common.datetime_utils import require_aware
from ..core.constants import (
    CHECK_IN_OPEN_MINUTES,
    DEFAULT_EVENT_DURATION_HOURS,
    EARLY_CHECK_IN_MINUTES,
    SLIGHTLY_LATE_MINUTES,
)
from ..core.enums import EventStatus, Punctuality, WindowPhase
from ..core.exceptions import ValidationError
from .model import Event


@dataclass(frozen=True)
class EventWindow:
    """Absolute (UTC) instants derived from an event's local schedule."""

    starts_at: datetime
    ends_at: datetime
    check_in_opens_at: datetime
    early_check_in_at: datetime


class TimeWindowCalculator:
    def __init__(
        self,
        *,
        check_in_open_minutes: int = CHECK_IN_OPEN_MINUTES,
        early_check_in_minutes: int = EARLY_CHECK_IN_MINUTES,
        default_duration_hours: int = DEFAULT_EVENT_DURATION_HOURS,
    ):
        self._open_lead = timedelta(minutes=int(check_in_open_minutes))
        self._early_lead = timedelta(minutes=int(early_check_in_minutes))
        self._default_duration = timedelta(hours=int(default_duration_hours))

    def window_for(self, event: Event) -> EventWindow:
        tz = event.tz
        start_local = datetime.combine(event.start_date, event.start_time or time(0, 0), tzinfo=tz)
        starts_at = start_local.astimezone(timezone.utc)

        if event.end_time is not None:
            end_local = datetime.combine(event.last_date, event.end_time, tzinfo=tz)
            ends_at = end_local.astimezone(timezone.utc)
        else:
            ends_at = starts_at + self._default_duration

        if ends_at <= starts_at:
            raise ValidationError(f"Event {event.event_id} ends before it starts")

        return EventWindow(
            starts_at=starts_at,
            ends_at=ends_at,
            check_in_opens_at=starts_at - self._open_lead,
            early_check_in_at=starts_at - self._early_lead,
        )

    def phase(self, event: Event, now: datetime) -> WindowPhase:
        now = require_aware(now, "now")
        w = self.window_for(event)
        if now >= w.ends_at:
            return WindowPhase.ENDED
        if now >= w.starts_at:
            return WindowPhase.IN_PROGRESS
        if now >= w.check_in_opens_at:
            return WindowPhase.CHECK_IN_OPEN
        return WindowPhase.NOT_YET_OPEN

    def seconds_until_open(self, event: Event, now: datetime) -> float:
        now = require_aware(now, "now")
        return max(0.0, (self.window_for(event).check_in_opens_at - now).total_seconds())

    def early_check_in_open(self, event: Event, now: datetime) -> bool:
        """Manual join flows: open from 30 minutes before start until the end."""
        now = require_aware(now, "now")
        w = self.window_for(event)
        return w.early_check_in_at <= now < w.ends_at

    def event_status(self, event: Event, now: datetime) -> EventStatus:
        phase = self.phase(event, now)
        if phase == WindowPhase.ENDED:
            return EventStatus.COMPLETED
        if phase == WindowPhase.IN_PROGRESS:
            return EventStatus.ACTIVE
        return EventStatus.UPCOMING

    def punctuality(self, event: Event, checked_in_at: datetime) -> Punctuality:
        checked_in_at = require_aware(checked_in_at, "checked_in_at")
        w = self.window_for(event)
        if checked_in_at < w.early_check_in_at:
            return Punctuality.VERY_EARLY
        if checked_in_at <= w.starts_at:
            return Punctuality.ON_TIME
        if checked_in_at <= w.starts_at + timedelta(minutes=SLIGHTLY_LATE_MINUTES):
            return Punctuality.SLIGHTLY_LATE
        return Punctuality.LATE
