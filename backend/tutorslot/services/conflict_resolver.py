# backend/tutorslot/services/conflict_resolver.py
"""
Conflict Resolver

Overlap detection shared by availability saves (wall-clock ranges within one
weekday) and by booking validation (absolute windows against a teacher's
accepted sessions).

Intervals are half-open: touching endpoints (10:00-11:00 and 11:00-12:00)
do not overlap. Everything here is pure and deterministic.
"""

from typing import Any, List, Optional, Sequence, Tuple, TypeVar

from ..core.exceptions import AvailabilityOverlapException, ValidationException

T = TypeVar("T")


def _bounds(item: Any) -> Tuple[Any, Any]:
    """Accept TimeRange/AvailableSlot/ProposedTime (start/end) and Session (start_time/end_time)."""
    if hasattr(item, "start_time"):
        return item.start_time, item.end_time
    return item.start, item.end


def _fmt(item: Any) -> str:
    start, end = _bounds(item)
    return f"{start.strftime('%H:%M')}-{end.strftime('%H:%M')}"


class ConflictResolver:
    """Overlap checks over anything exposing start/end bounds."""

    @staticmethod
    def overlaps(a: Any, b: Any) -> bool:
        a_start, a_end = _bounds(a)
        b_start, b_end = _bounds(b)
        return a_start < b_end and b_start < a_end

    @staticmethod
    def find_overlapping_pair(ranges: Sequence[T]) -> Optional[Tuple[T, T]]:
        """
        Return the first overlapping pair in start order, or None.

        Sweeps once over the ranges sorted by start, tracking the range that
        currently reaches furthest.
        """
        if len(ranges) < 2:
            return None
        ordered = sorted(ranges, key=lambda item: _bounds(item))
        active = ordered[0]
        active_end = _bounds(active)[1]
        for item in ordered[1:]:
            start, end = _bounds(item)
            if start < active_end:
                return active, item
            if end > active_end:
                active, active_end = item, end
        return None

    @classmethod
    def has_overlap(cls, ranges: Sequence[Any]) -> bool:
        return cls.find_overlapping_pair(ranges) is not None

    @classmethod
    def find_conflicts(cls, candidate: Any, existing: Sequence[T]) -> List[T]:
        """Members of `existing` overlapping `candidate`, in their original order."""
        return [item for item in existing if cls.overlaps(candidate, item)]

    @classmethod
    def validate_day_ranges(cls, day: str, ranges: Sequence[Any]) -> None:
        """
        Reject a weekday's ranges when any is empty/inverted or two overlap.

        Raises:
            ValidationException: start >= end
            AvailabilityOverlapException: two ranges overlap
        """
        for item in ranges:
            start, end = _bounds(item)
            if start >= end:
                raise ValidationException(
                    f"Invalid range on {day}: {_fmt(item)} must end after it starts",
                    code="INVALID_TIME_RANGE",
                    details={"day": day, "range": _fmt(item)},
                )
        pair = cls.find_overlapping_pair(ranges)
        if pair is not None:
            existing, new = pair
            raise AvailabilityOverlapException(
                day=day,
                new_range=_fmt(new),
                conflicting_range=_fmt(existing),
            )
