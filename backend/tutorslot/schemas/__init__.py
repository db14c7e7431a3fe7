"""
Pydantic schemas for the booking core.

Records are fixed models with enum tags, not open dictionaries.
"""

from .availability import (
    AvailableSlot,
    DayAvailability,
    ProposedTime,
    TimeRange,
    Weekday,
    WeeklyAvailability,
)
from .session import (
    OPEN_STATUSES,
    TERMINAL_STATUSES,
    Attendance,
    Decision,
    EnrolledStudent,
    Session,
    SessionStatus,
    SessionType,
)

__all__ = [
    "AvailableSlot",
    "DayAvailability",
    "ProposedTime",
    "TimeRange",
    "Weekday",
    "WeeklyAvailability",
    "OPEN_STATUSES",
    "TERMINAL_STATUSES",
    "Attendance",
    "Decision",
    "EnrolledStudent",
    "Session",
    "SessionStatus",
    "SessionType",
]
