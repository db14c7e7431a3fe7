# backend/tutorslot/schemas/session.py
"""
Session schemas.

A session is one concrete meeting between a teacher and enrolled students.
Its `status` drives the booking state machine; see
services/booking_lifecycle.py for the allowed transitions.
"""

import datetime
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, List, Optional

from pydantic import Field, model_validator

from ..core.ulid_helper import generate_ulid
from ._strict_base import StrictModel
from .availability import ProposedTime

DateTimeType = datetime.datetime


class SessionStatus(str, Enum):
    """Booking lifecycle statuses."""

    REQUESTED = "requested"  # Student asked, teacher has not answered
    ACCEPTED = "accepted"  # Teacher accepted and payment was captured
    REFUSED = "refused"
    COUNTERED = "countered"  # Refused with alternative times proposed
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES: FrozenSet[SessionStatus] = frozenset(
    {SessionStatus.REFUSED, SessionStatus.CANCELLED, SessionStatus.COMPLETED}
)
OPEN_STATUSES: FrozenSet[SessionStatus] = frozenset(
    {SessionStatus.REQUESTED, SessionStatus.ACCEPTED}
)


class Attendance(str, Enum):
    PENDING = "pending"
    PRESENT = "present"
    ABSENT = "absent"


class Decision(str, Enum):
    """Teacher's answer to a request."""

    ACCEPT = "accept"
    REFUSE = "refuse"


class SessionType(str, Enum):
    LIVE = "live"
    RECORDED = "recorded"
    HYBRID = "hybrid"


def _now_utc() -> DateTimeType:
    return datetime.datetime.now(datetime.timezone.utc)


class EnrolledStudent(StrictModel):
    student_id: str
    attendance: Attendance = Attendance.PENDING
    enrolled_at: DateTimeType = Field(default_factory=_now_utc)


class Session(StrictModel):
    """
    Self-contained session record.

    Times are absolute and timezone-aware. `version` increases on every
    write so stores can offer compare-and-set.
    """

    id: str = Field(default_factory=generate_ulid)
    teacher_id: str
    student_id: Optional[str] = None
    course_id: str

    start_time: DateTimeType
    end_time: DateTimeType

    capacity: int = Field(default=1, ge=1)
    enrolled: List[EnrolledStudent] = Field(default_factory=list)
    status: SessionStatus = SessionStatus.REQUESTED
    session_type: SessionType = SessionType.LIVE
    alternatives: List[ProposedTime] = Field(default_factory=list)

    # Pricing snapshot and payment reference
    price: Decimal = Decimal("0")
    currency: str = "eur"
    transaction_id: Optional[str] = None
    # Failed captures so far; part of the capture idempotency key
    payment_attempts: int = Field(default=0, ge=0)

    # Links between a countered request and the session booked from its alternative
    countered_from: Optional[str] = None
    superseded_by: Optional[str] = None

    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None

    created_at: DateTimeType = Field(default_factory=_now_utc)
    updated_at: DateTimeType = Field(default_factory=_now_utc)
    version: int = 0

    @model_validator(mode="after")
    def _check_invariants(self) -> "Session":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if len(self.enrolled) > self.capacity:
            raise ValueError("enrolled students exceed capacity")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_full(self) -> bool:
        return len(self.enrolled) >= self.capacity

    @property
    def is_group(self) -> bool:
        return self.capacity > 1

    @property
    def duration_minutes(self) -> int:
        return int((self.end_time - self.start_time).total_seconds() // 60)

    def enrolled_ids(self) -> List[str]:
        return [entry.student_id for entry in self.enrolled]

    def participant_ids(self) -> List[str]:
        """Teacher plus every enrolled student, used for notification fan-out."""
        ids = [self.teacher_id]
        for student_id in self.enrolled_ids():
            if student_id not in ids:
                ids.append(student_id)
        if self.student_id and self.student_id not in ids:
            ids.append(self.student_id)
        return ids
