# backend/tutorslot/services/slot_generator.py
"""
Slot Generator

Expands a teacher's recurring weekly availability into concrete calendar
slots over a bounded horizon, minus anything already taken by an accepted
session or already in the past.

Slots are never persisted: availability and bookings change independently,
and recomputing (bounded by horizon_days x ranges per day) keeps results
consistent with the latest bookings. Generation reads without locking, so a
slot returned here may be consumed concurrently; the re-check inside
BookingLifecycle.request is what prevents double booking.
"""

from datetime import date, datetime, timedelta
import logging
from typing import Callable, Iterator, List, Optional, Sequence

import pytz

from ..core.config import settings
from ..core.exceptions import ValidationException
from ..core.timezone_utils import ensure_aware, get_timezone, localize, today_in, utc_now
from ..repositories.base_repository import SessionRepository
from ..schemas.availability import (
    AvailableSlot,
    Weekday,
    WeeklyAvailability,
    format_slot_label,
)
from ..schemas.session import Session, SessionStatus
from .availability_store import AvailabilityStore
from .base import BaseService
from .conflict_resolver import ConflictResolver

logger = logging.getLogger(__name__)


class SlotGenerator(BaseService):
    """Derives bookable slots from availability and accepted sessions."""

    def __init__(
        self,
        availability_store: AvailabilityStore,
        session_repository: SessionRepository,
        *,
        clock: Callable[[], datetime] = utc_now,
        default_horizon_days: Optional[int] = None,
    ) -> None:
        super().__init__()
        self.availability_store = availability_store
        self.session_repository = session_repository
        self.clock = clock
        self.default_horizon_days = (
            default_horizon_days
            if default_horizon_days is not None
            else settings.default_horizon_days
        )

    @staticmethod
    def _validate_arguments(duration_minutes: int, horizon_days: int) -> None:
        if duration_minutes <= 0:
            raise ValidationException(
                "Slot duration must be a positive number of minutes",
                code="INVALID_DURATION",
                details={"duration_minutes": duration_minutes},
            )
        if horizon_days < 0:
            raise ValidationException(
                "Horizon cannot be negative",
                code="INVALID_HORIZON",
                details={"horizon_days": horizon_days},
            )

    def generate_slots(
        self,
        teacher_id: str,
        duration_minutes: int,
        horizon_days: Optional[int] = None,
    ) -> Iterator[AvailableSlot]:
        """
        Lazily yield bookable slots in chronological order.

        Walks today through today + horizon_days (inclusive) in the teacher's
        timezone. Callers may stop early; calling again restarts from the
        current state.

        Args:
            teacher_id: Teacher whose availability is expanded
            duration_minutes: Exact length of each slot
            horizon_days: Days ahead to cover (defaults to the configured horizon)

        Raises:
            ValidationException: non-positive duration or negative horizon
        """
        horizon = self.default_horizon_days if horizon_days is None else horizon_days
        self._validate_arguments(duration_minutes, horizon)
        return self._iter_slots(teacher_id, duration_minutes, horizon)

    def _iter_slots(
        self, teacher_id: str, duration_minutes: int, horizon_days: int
    ) -> Iterator[AvailableSlot]:
        availability = self.availability_store.get(teacher_id)
        if availability.is_empty:
            return

        tz = get_timezone(availability.timezone)
        now = ensure_aware(self.clock())
        today = today_in(tz, now)
        accepted = self._accepted_sessions(teacher_id)
        step = timedelta(minutes=duration_minutes)

        for offset in range(horizon_days + 1):
            day = today + timedelta(days=offset)
            yield from self._slots_for_day(availability, day, tz, step, accepted, now)

    def _accepted_sessions(self, teacher_id: str) -> List[Session]:
        return self.session_repository.list_for_teacher(
            teacher_id, statuses=[SessionStatus.ACCEPTED]
        )

    @staticmethod
    def _slots_for_day(
        availability: WeeklyAvailability,
        day: date,
        tz: pytz.BaseTzInfo,
        step: timedelta,
        accepted: Sequence[Session],
        now: datetime,
    ) -> Iterator[AvailableSlot]:
        day_availability = availability.for_day(Weekday.from_date(day))
        if not day_availability.enabled:
            return

        for time_range in sorted(day_availability.ranges, key=lambda r: (r.start, r.end)):
            range_start = localize(day, time_range.start, tz)
            range_end = localize(day, time_range.end, tz)
            cursor = range_start
            # Back-to-back partition; a remainder shorter than `step` is dropped
            while cursor + step <= range_end:
                slot_start = tz.normalize(cursor)
                slot_end = tz.normalize(cursor + step)
                cursor = cursor + step
                if slot_start < now:
                    continue
                candidate = AvailableSlot(
                    start=slot_start,
                    end=slot_end,
                    label=format_slot_label(slot_start, slot_end),
                )
                if ConflictResolver.find_conflicts(candidate, accepted):
                    continue
                yield candidate

    @BaseService.measure_operation("slots_for_date")
    def slots_for_date(
        self, teacher_id: str, target_date: date, duration_minutes: int
    ) -> List[AvailableSlot]:
        """All bookable slots on one calendar day of the teacher's timezone."""
        self._validate_arguments(duration_minutes, 0)
        availability = self.availability_store.get(teacher_id)
        if availability.is_empty:
            return []
        tz = get_timezone(availability.timezone)
        now = ensure_aware(self.clock())
        return list(
            self._slots_for_day(
                availability,
                target_date,
                tz,
                timedelta(minutes=duration_minutes),
                self._accepted_sessions(teacher_id),
                now,
            )
        )

    @BaseService.measure_operation("is_slot_available")
    def is_slot_available(
        self,
        teacher_id: str,
        start: datetime,
        end: datetime,
        horizon_days: Optional[int] = None,
    ) -> bool:
        """
        Whether (start, end) is currently one of the generated slots.

        Used to re-validate a caller's choice at request time; it answers from
        fresh state, never from an earlier generation. `horizon_days` must be
        the horizon the slot was offered with.
        """
        start = ensure_aware(start)
        end = ensure_aware(end)
        if end <= start:
            return False
        length = end - start
        if length.total_seconds() % 60:
            return False
        duration_minutes = int(length.total_seconds() // 60)

        availability = self.availability_store.get(teacher_id)
        if availability.is_empty:
            return False
        tz = get_timezone(availability.timezone)
        now = ensure_aware(self.clock())
        local_day = start.astimezone(tz).date()
        offset = (local_day - today_in(tz, now)).days
        horizon = horizon_days if horizon_days is not None else self.default_horizon_days
        if offset < 0 or offset > horizon:
            return False

        for slot in self.slots_for_date(teacher_id, local_day, duration_minutes):
            if slot.start == start and slot.end == end:
                return True
        return False
