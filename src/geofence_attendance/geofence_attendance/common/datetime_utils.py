from __future__ import annotations

from datetime import datetime, timezone

from ..core.exceptions import ValidationError


def utc_now() -> datetime:
    """Current UTC instant.

    Note: Wrapped so tests can patch/mocked easier.
    """
    return datetime.now(timezone.utc)


def require_aware(value: datetime, field_name: str = "timestamp") -> datetime:
    """Reject naive datetimes: local wall-clock values must never be compared with UTC."""
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValidationError(f"{field_name} must be timezone-aware")
    return value


def parse_iso_datetime(value: str, field_name: str = "timestamp") -> datetime:
    """Parse an ISO-8601 instant with offset ('Z' accepted) into an aware UTC datetime."""
    v = (value or "").strip()
    if v.endswith("Z"):
        v = v[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(v)
    except ValueError:
        raise ValidationError(f"Invalid {field_name} {value!r} (ISO-8601 expected)")
    return require_aware(parsed, field_name).astimezone(timezone.utc)


def format_duration(seconds: float) -> str:
    total = int(max(0, seconds))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"
