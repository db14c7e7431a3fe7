"""
Shared fixtures for the booking core tests.

Everything runs against the in-memory repositories and a fixed clock:
Wednesday 2025-01-08 12:00 UTC. The Monday after that is 2025-01-13.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from unittest.mock import Mock

import pytest
import pytz

from tutorslot.core.booking_lock import TeacherLockManager
from tutorslot.core.preferences import BookingPreferences
from tutorslot.repositories import InMemoryAvailabilityRepository, InMemorySessionRepository
from tutorslot.services.availability_store import AvailabilityStore
from tutorslot.services.base import BaseService
from tutorslot.services.booking_lifecycle import BookingLifecycle
from tutorslot.services.booking_orchestrator import BookingOrchestrator
from tutorslot.services.notifications import RecordingNotificationSender
from tutorslot.services.payment import PaymentResult
from tutorslot.services.slot_generator import SlotGenerator

FIXED_NOW = datetime(2025, 1, 8, 12, 0, tzinfo=pytz.UTC)
NEXT_MONDAY = date(2025, 1, 13)
TEACHER_ID = "teacher-1"
STUDENT_ID = "student-1"
COURSE_ID = "course-algebra"


class FakeClock:
    """Callable clock that tests can move forward."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def utc(year: int, month: int, day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=pytz.UTC)


def monday_schedule(*ranges):
    """Availability payload with only Monday enabled."""
    return {
        "timezone": "UTC",
        "days": [
            {
                "day": "monday",
                "enabled": True,
                "ranges": [{"start": start, "end": end} for start, end in ranges],
            }
        ],
    }


@pytest.fixture(autouse=True)
def _reset_service_metrics():
    BaseService._class_metrics.clear()
    yield
    BaseService._class_metrics.clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def availability_repository():
    return InMemoryAvailabilityRepository()


@pytest.fixture
def session_repository():
    return InMemorySessionRepository()


@pytest.fixture
def lock_manager():
    return TeacherLockManager(timeout_s=2.0, ttl_s=5, namespace="test")


@pytest.fixture
def availability_store(availability_repository, clock):
    return AvailabilityStore(availability_repository, clock=clock)


@pytest.fixture
def slot_generator(availability_store, session_repository, clock):
    return SlotGenerator(
        availability_store, session_repository, clock=clock, default_horizon_days=28
    )


@pytest.fixture
def lifecycle(session_repository, slot_generator, lock_manager, clock):
    return BookingLifecycle(
        session_repository, slot_generator, lock_manager, clock=clock, max_alternatives=3
    )


@pytest.fixture
def payment_gateway():
    gateway = Mock()
    gateway.capture.return_value = PaymentResult(success=True, transaction_id="pi_123")
    gateway.refund.return_value = True
    return gateway


@pytest.fixture
def notifier():
    return RecordingNotificationSender()


@pytest.fixture
def preferences():
    return BookingPreferences({"default_duration_minutes": 60, "horizon_days": 14})


@pytest.fixture
def orchestrator(
    availability_store, slot_generator, lifecycle, payment_gateway, notifier, preferences
):
    return BookingOrchestrator(
        availability_store,
        slot_generator,
        lifecycle,
        payment_gateway,
        notifier=notifier,
        preferences=preferences,
    )


@pytest.fixture
def monday_teacher(availability_store):
    """Teacher available Mondays 09:00-12:00 UTC."""
    availability_store.set(TEACHER_ID, monday_schedule(("09:00", "12:00")))
    return TEACHER_ID


@pytest.fixture
def first_slot(slot_generator, monday_teacher):
    """Monday 2025-01-13 09:00-10:00 UTC."""
    return next(iter(slot_generator.generate_slots(monday_teacher, 60, 7)))


@pytest.fixture
def requested_session(lifecycle, monday_teacher, first_slot):
    return lifecycle.request(
        monday_teacher, STUDENT_ID, first_slot, COURSE_ID, price=Decimal("40.00")
    )
