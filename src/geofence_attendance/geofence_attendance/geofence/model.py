from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class LocationSample:
    """One position report for a participant at an event.

    Ephemeral: only the latest sample is kept on the attendance record.
    """

    participant_id: int
    event_id: int
    latitude: float
    longitude: float
    timestamp: datetime
    accuracy: Optional[float] = None


@dataclass(frozen=True)
class Classification:
    distance_m: float
    radius_m: float

    @property
    def is_inside(self) -> bool:
        # Boundary is inside.
        return self.distance_m <= self.radius_m

    @property
    def overshoot_m(self) -> float:
        return max(0.0, self.distance_m - self.radius_m)
