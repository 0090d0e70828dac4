from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

from geofence_attendance.attendance.memory_repository import InMemoryRecordStore
from geofence_attendance.attendance.service import AttendanceService
from geofence_attendance.core.constants import EARTH_RADIUS_M
from geofence_attendance.events.memory_repository import InMemoryEventCatalog
from geofence_attendance.events.model import Event
from geofence_attendance.geofence.model import LocationSample
from geofence_attendance.participants.memory_repository import InMemoryParticipantRepository
from geofence_attendance.participants.model import Participant

UTC = timezone.utc


class ManualClock:
    def __init__(self, now: datetime):
        self._now = now

    def now(self) -> datetime:
        return self._now

    def to_local(self, instant: datetime, tz_name: str) -> datetime:
        return instant.astimezone(ZoneInfo(tz_name))

    def set(self, value: datetime) -> None:
        self._now = value

    def advance(self, **delta) -> datetime:
        self._now = self._now + timedelta(**delta)
        return self._now


class CollectingSink:
    def __init__(self):
        self.notices = []

    def notify(self, notice) -> None:
        self.notices.append(notice)

    def kinds(self) -> list[str]:
        return [n.kind for n in self.notices]


def north_of(lat: float, lon: float, meters: float) -> tuple[float, float]:
    """Point `meters` due north along the meridian."""
    return lat + math.degrees(meters / EARTH_RADIUS_M), lon


@pytest.fixture
def fixed_now() -> datetime:
    # 09:00 in New York (EDT) on the event day.
    return datetime(2025, 6, 14, 13, 0, 0, tzinfo=UTC)


@pytest.fixture
def clock(fixed_now) -> ManualClock:
    return ManualClock(fixed_now)


@pytest.fixture
def sink() -> CollectingSink:
    return CollectingSink()


@pytest.fixture
def event() -> Event:
    return Event(
        event_id=1,
        title="Community Cleanup",
        start_date=date(2025, 6, 14),
        start_time=time(9, 0),
        end_time=time(12, 0),
        timezone="America/New_York",
        center_lat=40.7128,
        center_lon=-74.0060,
        radius_m=100,
        max_time_outside_s=600,
    )


@pytest.fixture
def sample_at(event, clock):
    """Build a sample `meters` north of the event center, stamped with the clock."""

    def make(meters: float = 0.0, *, participant_id: int = 7, at: datetime | None = None) -> LocationSample:
        lat, lon = north_of(event.center_lat, event.center_lon, meters)
        return LocationSample(
            participant_id=participant_id,
            event_id=event.event_id,
            latitude=lat,
            longitude=lon,
            timestamp=at or clock.now(),
            accuracy=5.0,
        )

    return make


@pytest.fixture
def engine(event, clock, sink):
    records = InMemoryRecordStore()
    events = InMemoryEventCatalog([event])
    participants = InMemoryParticipantRepository(
        [
            Participant(participant_id=7, name="Ana Ruiz", email="ana@example.com"),
            Participant(participant_id=8, name="Ben Okafor", email="ben@example.com"),
        ]
    )
    service = AttendanceService(records, events, participants, clock=clock, notifications=sink)
    return SimpleNamespace(
        service=service,
        records=records,
        events=events,
        participants=participants,
        clock=clock,
        sink=sink,
        event=event,
    )
