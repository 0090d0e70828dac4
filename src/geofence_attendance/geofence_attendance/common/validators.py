from __future__ import annotations

import math

from ..core.exceptions import InvalidGeometry, ValidationError


def require_coordinates(latitude: float, longitude: float) -> tuple[float, float]:
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        raise InvalidGeometry(latitude, longitude)

    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise InvalidGeometry(latitude, longitude)
    if not -90.0 <= lat <= 90.0 or not -180.0 <= lon <= 180.0:
        raise InvalidGeometry(latitude, longitude)
    return lat, lon


def require_positive(value: float, field_name: str) -> float:
    if value is None or not math.isfinite(float(value)) or float(value) <= 0:
        raise ValidationError(f"{field_name} must be greater than 0")
    return float(value)


def require_fraction(value: float, field_name: str) -> float:
    v = float(value)
    if not 0.0 < v <= 1.0:
        raise ValidationError(f"{field_name} must be in (0, 1]")
    return v
