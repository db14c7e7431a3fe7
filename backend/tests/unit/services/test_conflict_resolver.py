# backend/tests/unit/services/test_conflict_resolver.py
"""
Unit tests for ConflictResolver overlap logic.

Covers half-open interval semantics for wall-clock ranges and absolute
session windows, and the validation used when saving availability.
"""

from datetime import datetime, time

import pytest
import pytz

from tutorslot.core.exceptions import AvailabilityOverlapException, ValidationException
from tutorslot.schemas.availability import ProposedTime, TimeRange
from tutorslot.schemas.session import Session
from tutorslot.services.conflict_resolver import ConflictResolver


def _range(start: str, end: str) -> TimeRange:
    return TimeRange(start=time.fromisoformat(start), end=time.fromisoformat(end))


def _window(start_hour: int, end_hour: int) -> ProposedTime:
    return ProposedTime(
        start=datetime(2025, 1, 13, start_hour, tzinfo=pytz.UTC),
        end=datetime(2025, 1, 13, end_hour, tzinfo=pytz.UTC),
    )


class TestOverlaps:
    @pytest.mark.parametrize(
        "a, b, expected",
        [
            (("09:00", "10:00"), ("09:30", "10:30"), True),
            (("09:00", "12:00"), ("10:00", "11:00"), True),
            (("09:00", "10:00"), ("10:00", "11:00"), False),
            (("09:00", "10:00"), ("11:00", "12:00"), False),
        ],
    )
    def test_overlap_is_symmetric(self, a, b, expected):
        first, second = _range(*a), _range(*b)

        assert ConflictResolver.overlaps(first, second) is expected
        assert ConflictResolver.overlaps(second, first) is expected

    def test_touching_windows_do_not_overlap(self):
        assert not ConflictResolver.overlaps(_window(9, 10), _window(10, 11))

    def test_session_bounds_are_read_from_start_and_end_time(self):
        session = Session(
            teacher_id="t",
            course_id="c",
            start_time=datetime(2025, 1, 13, 10, tzinfo=pytz.UTC),
            end_time=datetime(2025, 1, 13, 11, tzinfo=pytz.UTC),
        )

        assert ConflictResolver.overlaps(_window(10, 11), session)
        assert not ConflictResolver.overlaps(_window(11, 12), session)


class TestFindConflicts:
    def test_returns_only_overlapping_members_in_order(self):
        existing = [_window(8, 9), _window(9, 11), _window(10, 12), _window(12, 13)]

        conflicts = ConflictResolver.find_conflicts(_window(10, 11), existing)

        assert conflicts == [existing[1], existing[2]]

    def test_empty_existing_has_no_conflicts(self):
        assert ConflictResolver.find_conflicts(_window(9, 10), []) == []


class TestHasOverlap:
    def test_detects_overlap_regardless_of_input_order(self):
        ranges = [_range("13:00", "14:00"), _range("09:00", "12:00"), _range("11:30", "12:30")]

        assert ConflictResolver.has_overlap(ranges)

    def test_back_to_back_ranges_are_fine(self):
        ranges = [_range("10:00", "11:00"), _range("09:00", "10:00"), _range("11:00", "12:00")]

        assert not ConflictResolver.has_overlap(ranges)

    def test_range_nested_after_a_long_one_is_found(self):
        ranges = [_range("08:00", "18:00"), _range("09:00", "10:00"), _range("12:00", "13:00")]

        pair = ConflictResolver.find_overlapping_pair(ranges)

        assert pair == (ranges[0], ranges[1])


class TestValidateDayRanges:
    def test_overlap_raises_with_both_ranges_in_details(self):
        with pytest.raises(AvailabilityOverlapException) as exc_info:
            ConflictResolver.validate_day_ranges(
                "monday", [_range("09:00", "11:00"), _range("10:00", "12:00")]
            )

        assert exc_info.value.code == "AVAILABILITY_OVERLAP"
        assert exc_info.value.details["day"] == "monday"
        assert exc_info.value.details["conflicting_range"] == "09:00-11:00"
        assert exc_info.value.details["new_range"] == "10:00-12:00"

    def test_inverted_range_raises_validation_error(self):
        class Raw:
            start = time(11, 0)
            end = time(10, 0)

        with pytest.raises(ValidationException) as exc_info:
            ConflictResolver.validate_day_ranges("tuesday", [Raw()])

        assert exc_info.value.code == "INVALID_TIME_RANGE"

    def test_valid_ranges_pass(self):
        ConflictResolver.validate_day_ranges(
            "friday", [_range("09:00", "10:00"), _range("10:00", "11:00")]
        )
