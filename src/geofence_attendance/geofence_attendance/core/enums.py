from __future__ import annotations

from enum import Enum, IntEnum


class AttendanceState(str, Enum):
    """Lifecycle of one participant/event attendance record."""

    REGISTERED = "registered"
    INSIDE = "checked-in:inside"
    OUTSIDE_OK = "checked-in:outside-ok"
    OUTSIDE_WARNING = "checked-in:outside-warning"
    ABSENT = "absent"
    CHECKED_OUT = "checked-out"

    @property
    def is_terminal(self) -> bool:
        return self in (AttendanceState.ABSENT, AttendanceState.CHECKED_OUT)

    @property
    def is_checked_in(self) -> bool:
        return self in (AttendanceState.INSIDE, AttendanceState.OUTSIDE_OK, AttendanceState.OUTSIDE_WARNING)

    @property
    def is_outside(self) -> bool:
        return self in (AttendanceState.OUTSIDE_OK, AttendanceState.OUTSIDE_WARNING)


class WindowPhase(str, Enum):
    NOT_YET_OPEN = "not-yet-open"
    CHECK_IN_OPEN = "check-in-open"
    IN_PROGRESS = "in-progress"
    ENDED = "ended"

    @property
    def accepts_check_in(self) -> bool:
        return self in (WindowPhase.CHECK_IN_OPEN, WindowPhase.IN_PROGRESS)


class EventStatus(str, Enum):
    UPCOMING = "upcoming"
    ACTIVE = "active"
    COMPLETED = "completed"


class AlertType(str, Enum):
    EXCEEDED_LIMIT = "exceeded_limit"
    WARNING = "warning"
    ABSENT = "absent"


class CheckOutReason(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"


class Punctuality(str, Enum):
    VERY_EARLY = "very-early"
    ON_TIME = "on-time"
    SLIGHTLY_LATE = "slightly-late"
    LATE = "late"


class EscalationLevel(IntEnum):
    """How far the current outside episode has progressed."""

    NONE = 0
    WARNING = 1
    EXCEEDED = 2
