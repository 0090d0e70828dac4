from __future__ import annotations

from ..common.validators import require_coordinates
from ..events.model import Event
from .distance import haversine_m
from .model import Classification, LocationSample


def classify(sample: LocationSample, event: Event) -> Classification:
    """Distance of a sample from the event center, and whether it is inside the radius.

    Raises InvalidGeometry for malformed sample coordinates.
    """
    lat, lon = require_coordinates(sample.latitude, sample.longitude)
    distance = haversine_m(event.center_lat, event.center_lon, lat, lon)
    return Classification(distance_m=distance, radius_m=float(event.radius_m))
