from __future__ import annotations

from typing import Any, Optional


class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class InvalidGeometry(ValidationError):
    """Raised for malformed or out-of-range coordinates. Never coerced."""

    def __init__(self, latitude: Any, longitude: Any):
        self.latitude = latitude
        self.longitude = longitude
        super().__init__(f"Invalid coordinates (lat={latitude!r}, lon={longitude!r})")


class OutsideGeofence(DomainError):
    """Check-in attempted while outside the event radius."""

    def __init__(self, distance_m: float, radius_m: float):
        self.distance_m = distance_m
        self.radius_m = radius_m
        super().__init__(
            f"You are {self.overshoot_m:.0f}m outside the {radius_m:.0f}m radius"
        )

    @property
    def overshoot_m(self) -> float:
        return max(0.0, self.distance_m - self.radius_m)


class WindowNotOpen(DomainError):
    """Check-in attempted before the check-in-open threshold or after the end."""

    def __init__(self, phase: Any, seconds_until_open: Optional[float] = None):
        self.phase = phase
        self.seconds_until_open = seconds_until_open
        if seconds_until_open is None:
            message = "Event has ended"
        else:
            minutes = max(1, int(-(-seconds_until_open // 60)))
            message = f"Check-in opens in {minutes} minutes"
        super().__init__(message)


class LocationUnavailable(DomainError):
    """No usable position: permission denied, timeout or no fix."""

    PERMISSION_DENIED = "permission_denied"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"

    def __init__(self, reason: str = UNAVAILABLE, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or f"Location unavailable ({reason})")


class AlreadyTerminal(DomainError):
    """Mutation attempted on a checked-out/absent record.

    The service treats this as a no-op success.
    """

    def __init__(self, record: Any):
        self.record = record
        super().__init__(f"Attendance record {record.record_id} is already {record.state.value}")


class RecordNotFound(DomainError):
    pass


class EventNotFound(DomainError):
    pass


class ParticipantNotFound(DomainError):
    pass


class DuplicateRecord(DomainError):
    """A record already exists for this participant and event."""


class ConcurrentModification(DomainError):
    """Compare-and-set kept failing for the same record."""
