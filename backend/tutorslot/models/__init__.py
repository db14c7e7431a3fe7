"""
Database models for the booking store.

- WeeklyAvailabilityRecord: one recurring schedule per teacher
- SessionRecord: one row per session, with a version column for compare-and-set
"""

from .availability import WeeklyAvailabilityRecord
from .session import SessionRecord

__all__ = ["WeeklyAvailabilityRecord", "SessionRecord"]
