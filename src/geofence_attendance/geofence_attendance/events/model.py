from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..common.validators import require_coordinates, require_positive
from ..core.constants import DEFAULT_GEOFENCE_RADIUS_M, DEFAULT_MAX_TIME_OUTSIDE_SECONDS
from ..core.exceptions import ValidationError


@dataclass(frozen=True)
class Event:
    """Domain entity: an event with a circular geofence and a local-time window.

    `start_date`/`end_date` are calendar dates in the event's own timezone;
    `end_date` is only set for multi-day events.
    """

    event_id: int
    title: str
    start_date: date
    timezone: str
    center_lat: float
    center_lon: float
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    end_date: Optional[date] = None
    radius_m: float = DEFAULT_GEOFENCE_RADIUS_M
    max_time_outside_s: int = DEFAULT_MAX_TIME_OUTSIDE_SECONDS

    def __post_init__(self) -> None:
        require_coordinates(self.center_lat, self.center_lon)
        require_positive(self.radius_m, "radius_m")
        require_positive(self.max_time_outside_s, "max_time_outside_s")

        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValidationError(f"Unknown timezone {self.timezone!r}")

        if self.end_date is not None and self.end_date < self.start_date:
            raise ValidationError("End date must be on or after start date")

        if self.start_time is not None and self.end_time is not None:
            start = datetime.combine(self.start_date, self.start_time)
            end = datetime.combine(self.last_date, self.end_time)
            if end <= start:
                raise ValidationError("End time must be after start time")

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @property
    def last_date(self) -> date:
        return self.end_date or self.start_date

    @property
    def is_multi_day(self) -> bool:
        return self.end_date is not None and self.end_date > self.start_date
