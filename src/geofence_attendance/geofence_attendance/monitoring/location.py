"""Location acquisition port and an in-process push implementation."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol

from ..common.datetime_utils import utc_now
from ..core.constants import DEFAULT_LOCATION_MAX_AGE_SECONDS
from ..core.exceptions import LocationUnavailable
from ..geofence.model import LocationSample

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float
    timestamp: datetime
    accuracy: Optional[float] = None

    def to_sample(self, *, participant_id: int, event_id: int) -> LocationSample:
        return LocationSample(
            participant_id=participant_id,
            event_id=event_id,
            latitude=self.latitude,
            longitude=self.longitude,
            accuracy=self.accuracy,
            timestamp=self.timestamp,
        )


PositionCallback = Callable[[Position], None]
ErrorCallback = Callable[[LocationUnavailable], None]


class SubscriptionHandle(Protocol):
    def cancel(self) -> None:
        raise NotImplementedError


class LocationSource(Protocol):
    def get_current_location(self, participant_id: int, *, timeout_s: float) -> Position:
        """Return a fresh fix or raise LocationUnavailable."""
        raise NotImplementedError

    def watch_location(
        self,
        participant_id: int,
        callback: PositionCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> SubscriptionHandle:
        raise NotImplementedError


class _Subscription:
    def __init__(self, source: "PushLocationSource", participant_id: int, callback, on_error):
        self._source = source
        self.participant_id = participant_id
        self.callback = callback
        self.on_error = on_error
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._source._remove(self)


class PushLocationSource(LocationSource):
    """Positions are pushed in (e.g. by the mobile client through the API) and fanned out.

    Keeps the latest fix per participant; `get_current_location` serves a fix
    younger than `max_age_s`, otherwise waits up to the timeout for a new one.
    """

    def __init__(self, *, max_age_s: float = DEFAULT_LOCATION_MAX_AGE_SECONDS, now: Callable[[], datetime] = utc_now):
        self._max_age = timedelta(seconds=float(max_age_s))
        self._now = now
        self._cond = threading.Condition()
        self._latest: dict[int, Position] = {}
        self._denied: set[int] = set()
        self._subs: dict[int, list[_Subscription]] = {}

    def publish(self, participant_id: int, position: Position) -> int:
        """Store and dispatch a position. Returns the number of subscribers notified."""
        participant_id = int(participant_id)
        with self._cond:
            self._denied.discard(participant_id)
            self._latest[participant_id] = position
            subs = list(self._subs.get(participant_id, ()))
            self._cond.notify_all()

        for sub in subs:
            if not sub.active:
                continue
            try:
                sub.callback(position)
            except Exception:
                logger.exception("location subscriber failed for participant=%s", participant_id)
        return len(subs)

    def deny(self, participant_id: int) -> None:
        """Mark location permission as denied until the next published fix."""
        participant_id = int(participant_id)
        error = LocationUnavailable(LocationUnavailable.PERMISSION_DENIED)
        with self._cond:
            self._denied.add(participant_id)
            subs = list(self._subs.get(participant_id, ()))
            self._cond.notify_all()

        for sub in subs:
            if sub.active and sub.on_error is not None:
                try:
                    sub.on_error(error)
                except Exception:
                    logger.exception("location error handler failed for participant=%s", participant_id)

    def get_current_location(self, participant_id: int, *, timeout_s: float) -> Position:
        participant_id = int(participant_id)
        deadline = time.monotonic() + float(timeout_s)
        with self._cond:
            requested_at = self._now()
            while True:
                if participant_id in self._denied:
                    raise LocationUnavailable(LocationUnavailable.PERMISSION_DENIED)
                latest = self._latest.get(participant_id)
                if latest is not None and requested_at - latest.timestamp <= self._max_age:
                    return latest
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise LocationUnavailable(LocationUnavailable.TIMEOUT)
                self._cond.wait(timeout=remaining)

    def watch_location(
        self,
        participant_id: int,
        callback: PositionCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> SubscriptionHandle:
        sub = _Subscription(self, int(participant_id), callback, on_error)
        with self._cond:
            self._subs.setdefault(sub.participant_id, []).append(sub)
        return sub

    def subscriber_count(self, participant_id: Optional[int] = None) -> int:
        with self._cond:
            if participant_id is not None:
                return len(self._subs.get(int(participant_id), ()))
            return sum(len(v) for v in self._subs.values())

    def _remove(self, sub: _Subscription) -> None:
        with self._cond:
            subs = self._subs.get(sub.participant_id, [])
            if sub in subs:
                subs.remove(sub)
            if not subs:
                self._subs.pop(sub.participant_id, None)
