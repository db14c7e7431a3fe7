# backend/tutorslot/schemas/availability.py
"""
Availability schemas.

A teacher publishes one recurring weekly schedule: for each weekday a flag
and a list of wall-clock ranges. Concrete bookable slots are derived from it
on demand and never stored.
"""

import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import Field, field_serializer, field_validator, model_validator
import pytz

from ..core.config import settings
from ._strict_base import FrozenModel, StrictModel

TimeType = datetime.time
DateTimeType = datetime.datetime


class Weekday(str, Enum):
    """Days of the week, Monday first (matches date.weekday())."""

    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def ordered(cls) -> List["Weekday"]:
        return list(cls)

    @classmethod
    def from_date(cls, value: datetime.date) -> "Weekday":
        return cls.ordered()[value.weekday()]


class TimeRange(FrozenModel):
    """Wall-clock range within one calendar day ("HH:MM" to "HH:MM")."""

    start: TimeType
    end: TimeType

    @field_validator("end")
    @classmethod
    def validate_time_order(cls, v: TimeType, info: Any) -> TimeType:
        """Ensure end time is after start time."""
        if (
            isinstance(getattr(info, "data", None), dict)
            and info.data.get("start") is not None
            and v <= info.data["start"]
        ):
            raise ValueError("End time must be after start time")
        return v

    @field_serializer("start", "end")
    def _serialize_time(self, value: TimeType) -> str:
        return value.strftime("%H:%M")

    @property
    def duration_minutes(self) -> int:
        return (self.end.hour * 60 + self.end.minute) - (self.start.hour * 60 + self.start.minute)

    def __str__(self) -> str:
        return f"{self.start.strftime('%H:%M')}-{self.end.strftime('%H:%M')}"


class DayAvailability(StrictModel):
    """Availability for one weekday."""

    day: Weekday
    enabled: bool = False
    ranges: List[TimeRange] = Field(default_factory=list)


def _all_days_disabled() -> List[DayAvailability]:
    return [DayAvailability(day=day) for day in Weekday.ordered()]


class WeeklyAvailability(StrictModel):
    """
    A teacher's recurring schedule.

    Exactly one entry per weekday once saved; `version` is bumped by every
    save and doubles as an optimistic-concurrency token for editors.
    """

    teacher_id: str
    timezone: str = Field(default_factory=lambda: settings.default_timezone)
    days: List[DayAvailability] = Field(default_factory=_all_days_disabled)
    version: int = 0
    updated_at: Optional[DateTimeType] = None

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {value}")
        return value

    @model_validator(mode="after")
    def _unique_weekdays(self) -> "WeeklyAvailability":
        seen = set()
        for entry in self.days:
            if entry.day in seen:
                raise ValueError(f"Duplicate entry for {entry.day.value}")
            seen.add(entry.day)
        return self

    @classmethod
    def empty(cls, teacher_id: str, timezone: Optional[str] = None) -> "WeeklyAvailability":
        return cls(teacher_id=teacher_id, timezone=timezone or settings.default_timezone)

    def for_day(self, day: Weekday) -> DayAvailability:
        for entry in self.days:
            if entry.day == day:
                return entry
        return DayAvailability(day=day)

    @property
    def is_empty(self) -> bool:
        """True when no weekday offers any bookable range."""
        return not any(entry.enabled and entry.ranges for entry in self.days)


class AvailableSlot(FrozenModel):
    """A concrete bookable interval; derived on every query, never persisted."""

    start: DateTimeType
    end: DateTimeType
    label: str = ""

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)


class ProposedTime(FrozenModel):
    """An absolute time window proposed by a teacher when countering a request."""

    start: DateTimeType
    end: DateTimeType

    @field_validator("end")
    @classmethod
    def validate_time_order(cls, v: DateTimeType, info: Any) -> DateTimeType:
        """Ensure end time is after start time."""
        if (
            isinstance(getattr(info, "data", None), dict)
            and info.data.get("start") is not None
            and v <= info.data["start"]
        ):
            raise ValueError("End time must be after start time")
        return v


def format_slot_label(start: DateTimeType, end: DateTimeType) -> str:
    return f"{start.strftime('%H:%M')} - {end.strftime('%H:%M')}"
