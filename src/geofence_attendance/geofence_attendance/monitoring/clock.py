from __future__ import annotations

from datetime import datetime
from typing import Protocol
from zoneinfo import ZoneInfo

from ..common.datetime_utils import require_aware, utc_now


class ClockSource(Protocol):
    def now(self) -> datetime:
        """Current instant, timezone-aware UTC."""
        raise NotImplementedError

    def to_local(self, instant: datetime, tz_name: str) -> datetime:
        raise NotImplementedError


class SystemClock(ClockSource):
    def now(self) -> datetime:
        return utc_now()

    def to_local(self, instant: datetime, tz_name: str) -> datetime:
        return require_aware(instant, "instant").astimezone(ZoneInfo(tz_name))
