"""
Timezone utilities for the booking core.

Weekly availability is expressed in the teacher's wall-clock time;
sessions and slots carry absolute, timezone-aware timestamps.
"""

from datetime import date, datetime, time
from typing import Callable

import pytz

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(pytz.UTC)


def get_timezone(name: str) -> pytz.BaseTzInfo:
    """
    Resolve an IANA timezone name.

    Args:
        name: Timezone name such as "Europe/Paris"

    Returns:
        pytz timezone object
    """
    return pytz.timezone(name)


def ensure_aware(dt: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt


def localize(day: date, wall_time: time, tz: pytz.BaseTzInfo) -> datetime:
    """
    Attach a wall-clock time on a calendar day to a timezone.

    pytz requires localize() rather than tzinfo= so DST offsets are right.
    """
    return tz.localize(datetime.combine(day, wall_time))


def today_in(tz: pytz.BaseTzInfo, now: datetime) -> date:
    """The calendar date of `now` as seen from `tz`."""
    return ensure_aware(now).astimezone(tz).date()


def to_utc(dt: datetime) -> datetime:
    """Convert an aware (or naive-UTC) datetime to UTC."""
    return ensure_aware(dt).astimezone(pytz.UTC)
