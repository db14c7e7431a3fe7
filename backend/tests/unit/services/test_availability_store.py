# backend/tests/unit/services/test_availability_store.py
"""
Tests for AvailabilityStore get/set.

A save fully replaces the stored schedule, and any rejected save leaves the
previous schedule untouched.
"""

from datetime import time
from unittest.mock import Mock

import pytest

from tutorslot.core.exceptions import (
    AvailabilityOverlapException,
    ConflictException,
    ValidationException,
)
from tutorslot.repositories import InMemoryAvailabilityRepository
from tutorslot.schemas.availability import (
    DayAvailability,
    TimeRange,
    Weekday,
    WeeklyAvailability,
)
from tutorslot.services.availability_store import AvailabilityStore


def _payload(**days):
    return {
        "timezone": "Europe/Paris",
        "days": [
            {
                "day": day,
                "enabled": bool(ranges),
                "ranges": [{"start": s, "end": e} for s, e in ranges],
            }
            for day, ranges in days.items()
        ],
    }


class TestGet:
    def test_unknown_teacher_gets_all_days_disabled(self, availability_store):
        schedule = availability_store.get("nobody")

        assert schedule.teacher_id == "nobody"
        assert [entry.day for entry in schedule.days] == Weekday.ordered()
        assert all(not entry.enabled and entry.ranges == [] for entry in schedule.days)
        assert schedule.version == 0
        assert schedule.is_empty


class TestSet:
    def test_saves_and_fills_missing_weekdays(self, availability_store, clock):
        saved = availability_store.set("t1", _payload(monday=[("09:00", "12:00")]))

        assert saved.version == 1
        assert saved.updated_at == clock.now
        assert saved.timezone == "Europe/Paris"
        assert len(saved.days) == 7
        monday = saved.for_day(Weekday.MONDAY)
        assert monday.enabled
        assert monday.ranges == [TimeRange(start=time(9), end=time(12))]
        assert not saved.for_day(Weekday.SUNDAY).enabled

    def test_ranges_are_stored_sorted(self, availability_store):
        saved = availability_store.set(
            "t1", _payload(tuesday=[("14:00", "15:00"), ("08:00", "09:00")])
        )

        starts = [r.start for r in saved.for_day(Weekday.TUESDAY).ranges]
        assert starts == [time(8), time(14)]

    def test_save_replaces_previous_schedule(self, availability_store):
        availability_store.set("t1", _payload(monday=[("09:00", "12:00")]))
        availability_store.set("t1", _payload(friday=[("10:00", "11:00")]))

        stored = availability_store.get("t1")
        assert not stored.for_day(Weekday.MONDAY).enabled
        assert stored.for_day(Weekday.MONDAY).ranges == []
        assert stored.for_day(Weekday.FRIDAY).enabled
        assert stored.version == 2

    def test_accepts_model_input(self, availability_store):
        model = WeeklyAvailability(
            teacher_id="t1",
            days=[
                DayAvailability(
                    day=Weekday.WEDNESDAY,
                    enabled=True,
                    ranges=[TimeRange(start=time(13), end=time(17))],
                )
            ],
        )

        saved = availability_store.set("t1", model)

        assert saved.for_day(Weekday.WEDNESDAY).ranges[0].end == time(17)

    def test_overlapping_ranges_rejected_without_write(self, availability_store):
        availability_store.set("t1", _payload(monday=[("09:00", "12:00")]))

        with pytest.raises(AvailabilityOverlapException):
            availability_store.set(
                "t1", _payload(monday=[("09:00", "11:00"), ("10:30", "12:00")])
            )

        stored = availability_store.get("t1")
        assert stored.version == 1
        assert stored.for_day(Weekday.MONDAY).ranges == [TimeRange(start=time(9), end=time(12))]

    def test_inverted_range_rejected(self, availability_store):
        with pytest.raises(ValidationException) as exc_info:
            availability_store.set("t1", _payload(monday=[("12:00", "09:00")]))

        assert exc_info.value.code == "INVALID_AVAILABILITY"
        assert availability_store.get("t1").version == 0

    def test_disabled_day_with_ranges_rejected(self, availability_store):
        payload = {
            "days": [
                {"day": "monday", "enabled": False, "ranges": [{"start": "09:00", "end": "10:00"}]}
            ]
        }

        with pytest.raises(ValidationException) as exc_info:
            availability_store.set("t1", payload)

        assert exc_info.value.code == "DISABLED_DAY_WITH_RANGES"

    def test_duplicate_weekday_rejected(self, availability_store):
        payload = {
            "days": [
                {"day": "monday", "enabled": True, "ranges": [{"start": "09:00", "end": "10:00"}]},
                {"day": "monday", "enabled": True, "ranges": [{"start": "11:00", "end": "12:00"}]},
            ]
        }

        with pytest.raises(ValidationException):
            availability_store.set("t1", payload)

    def test_unknown_timezone_rejected(self, availability_store):
        payload = _payload(monday=[("09:00", "10:00")])
        payload["timezone"] = "Mars/Olympus_Mons"

        with pytest.raises(ValidationException) as exc_info:
            availability_store.set("t1", payload)

        assert exc_info.value.code == "INVALID_AVAILABILITY"

    def test_payload_for_other_teacher_rejected(self, availability_store):
        payload = _payload(monday=[("09:00", "10:00")])
        payload["teacher_id"] = "someone-else"

        with pytest.raises(ValidationException) as exc_info:
            availability_store.set("t1", payload)

        assert exc_info.value.code == "TEACHER_MISMATCH"

    def test_stale_expected_version_conflicts(self, availability_store):
        availability_store.set("t1", _payload(monday=[("09:00", "10:00")]))
        availability_store.set("t1", _payload(monday=[("09:00", "11:00")]), expected_version=1)

        with pytest.raises(ConflictException) as exc_info:
            availability_store.set(
                "t1", _payload(monday=[("09:00", "12:00")]), expected_version=1
            )

        assert exc_info.value.code == "AVAILABILITY_VERSION_CONFLICT"
        assert exc_info.value.details["current_version"] == 2

    def test_validation_happens_before_repository_access(self):
        repository = Mock()
        store = AvailabilityStore(repository)

        with pytest.raises(AvailabilityOverlapException):
            store.set("t1", _payload(monday=[("09:00", "11:00"), ("10:00", "12:00")]))

        repository.get.assert_not_called()
        repository.compare_and_set.assert_not_called()


class _ReadHookRepository(InMemoryAvailabilityRepository):
    """Runs `on_next_read` right after the next get, once."""

    def __init__(self):
        super().__init__()
        self.on_next_read = None

    def get(self, teacher_id):
        stored = super().get(teacher_id)
        hook, self.on_next_read = self.on_next_read, None
        if hook is not None:
            hook()
        return stored


class TestConcurrentSaves:
    def test_save_between_read_and_write_conflicts(self, clock):
        repository = _ReadHookRepository()
        store = AvailabilityStore(repository, clock=clock)
        store.set("t1", _payload(monday=[("09:00", "10:00")]))
        repository.on_next_read = lambda: store.set(
            "t1", _payload(tuesday=[("09:00", "10:00")]), expected_version=1
        )

        with pytest.raises(ConflictException) as exc_info:
            store.set("t1", _payload(monday=[("14:00", "15:00")]), expected_version=1)

        assert exc_info.value.details["current_version"] == 2
        stored = store.get("t1")
        assert stored.version == 2
        assert stored.for_day(Weekday.TUESDAY).enabled
        assert not stored.for_day(Weekday.MONDAY).enabled

    def test_first_saves_race_only_one_wins(self, clock):
        repository = _ReadHookRepository()
        store = AvailabilityStore(repository, clock=clock)
        repository.on_next_read = lambda: store.set("t1", _payload(friday=[("09:00", "10:00")]))

        with pytest.raises(ConflictException):
            store.set("t1", _payload(monday=[("09:00", "10:00")]))

        assert store.get("t1").version == 1
        assert store.get("t1").for_day(Weekday.FRIDAY).enabled
