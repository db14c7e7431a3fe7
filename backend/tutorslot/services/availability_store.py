# backend/tutorslot/services/availability_store.py
"""
Availability Store

Holds each teacher's recurring weekly availability. A save is an upsert that
replaces the whole schedule; there is no merge, so ranges removed by the
teacher can never linger. Every check runs before the single write, so a
rejected save leaves the stored schedule untouched.
"""

from datetime import datetime
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from ..core.exceptions import ConflictException, ValidationException
from ..core.timezone_utils import utc_now
from ..repositories.base_repository import AvailabilityRepository
from ..schemas.availability import DayAvailability, Weekday, WeeklyAvailability
from .base import BaseService
from .conflict_resolver import ConflictResolver

logger = logging.getLogger(__name__)

AvailabilityPayload = Union[WeeklyAvailability, Mapping[str, Any]]


class AvailabilityStore(BaseService):
    """Get/set access to WeeklyAvailability, one per teacher."""

    def __init__(
        self,
        repository: AvailabilityRepository,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__()
        self.repository = repository
        self.clock = clock

    @BaseService.measure_operation("get_availability")
    def get(self, teacher_id: str) -> WeeklyAvailability:
        """
        Return the teacher's schedule.

        Unknown teachers get an all-days-disabled default; this never fails.
        """
        stored = self.repository.get(teacher_id)
        if stored is None:
            return WeeklyAvailability.empty(teacher_id)
        return stored

    @BaseService.measure_operation("set_availability")
    def set(
        self,
        teacher_id: str,
        availability: AvailabilityPayload,
        *,
        expected_version: Optional[int] = None,
    ) -> WeeklyAvailability:
        """
        Validate and replace a teacher's weekly schedule.

        Args:
            teacher_id: Owner of the schedule
            availability: Model or raw mapping ({"days": [...], "timezone": ...})
            expected_version: Version the editor loaded; a mismatch means
                someone else saved in between

        Returns:
            The stored schedule (normalized, version bumped)

        Raises:
            ValidationException: malformed payload, start >= end, overlaps,
                ranges on a disabled day
            ConflictException: expected_version is stale
        """
        self.log_operation("set_availability", teacher_id=teacher_id)

        parsed = self._parse(teacher_id, availability)
        days = self._normalize_days(parsed.days)

        current = self.repository.get(teacher_id)
        current_version = current.version if current is not None else 0
        if expected_version is not None and expected_version != current_version:
            raise self._version_conflict(teacher_id, expected_version, current_version)

        to_store = WeeklyAvailability(
            teacher_id=teacher_id,
            timezone=parsed.timezone,
            days=days,
            version=current_version + 1,
            updated_at=self.clock(),
        )
        # A save that landed after our read makes this write fail
        if not self.repository.compare_and_set(to_store, current_version):
            latest = self.repository.get(teacher_id)
            raise self._version_conflict(
                teacher_id,
                current_version,
                latest.version if latest is not None else 0,
            )
        self.logger.info(
            f"Saved availability for teacher {teacher_id} "
            f"({sum(len(d.ranges) for d in days if d.enabled)} ranges, version {to_store.version})"
        )
        return to_store

    @staticmethod
    def _version_conflict(
        teacher_id: str, expected_version: int, current_version: int
    ) -> ConflictException:
        return ConflictException(
            "Availability was changed by someone else, reload and try again",
            code="AVAILABILITY_VERSION_CONFLICT",
            details={
                "teacher_id": teacher_id,
                "expected_version": expected_version,
                "current_version": current_version,
            },
        )

    def _parse(self, teacher_id: str, availability: AvailabilityPayload) -> WeeklyAvailability:
        if isinstance(availability, WeeklyAvailability):
            if availability.teacher_id != teacher_id:
                raise ValidationException(
                    "Availability belongs to a different teacher",
                    code="TEACHER_MISMATCH",
                    details={"teacher_id": teacher_id, "payload_teacher_id": availability.teacher_id},
                )
            return availability

        payload: Dict[str, Any] = dict(availability)
        payload.setdefault("teacher_id", teacher_id)
        payload.pop("version", None)
        payload.pop("updated_at", None)
        try:
            parsed = WeeklyAvailability.model_validate(payload)
        except ValidationError as exc:
            raise ValidationException(
                "Invalid availability payload",
                code="INVALID_AVAILABILITY",
                details={"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc
        if parsed.teacher_id != teacher_id:
            raise ValidationException(
                "Availability belongs to a different teacher",
                code="TEACHER_MISMATCH",
                details={"teacher_id": teacher_id, "payload_teacher_id": parsed.teacher_id},
            )
        return parsed

    @staticmethod
    def _normalize_days(days: List[DayAvailability]) -> List[DayAvailability]:
        """Check every weekday, then return all seven in order with sorted ranges."""
        by_day: Dict[Weekday, DayAvailability] = {}
        for entry in days:
            if entry.day in by_day:
                raise ValidationException(
                    f"Duplicate entry for {entry.day.value}",
                    code="DUPLICATE_WEEKDAY",
                    details={"day": entry.day.value},
                )
            if not entry.enabled and entry.ranges:
                raise ValidationException(
                    f"{entry.day.value} is disabled but has time ranges",
                    code="DISABLED_DAY_WITH_RANGES",
                    details={"day": entry.day.value},
                )
            ConflictResolver.validate_day_ranges(entry.day.value, entry.ranges)
            by_day[entry.day] = entry

        normalized = []
        for day in Weekday.ordered():
            entry = by_day.get(day)
            if entry is None:
                normalized.append(DayAvailability(day=day))
                continue
            normalized.append(
                DayAvailability(
                    day=day,
                    enabled=entry.enabled,
                    ranges=sorted(entry.ranges, key=lambda r: (r.start, r.end)),
                )
            )
        return normalized
