"""Booking domain events, used as notification payloads."""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional


@dataclass
class BookingRequested:
    """Fired after a student requests (or joins) a session."""

    session_id: str
    teacher_id: str
    student_id: str
    course_id: str
    start_time: datetime
    end_time: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingAccepted:
    """Fired after the teacher accepts and payment was captured."""

    session_id: str
    teacher_id: str
    start_time: datetime
    end_time: datetime
    amount: Decimal
    currency: str
    transaction_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingRefused:
    """Fired after a request is refused, or its alternatives are declined."""

    session_id: str
    teacher_id: str
    superseded_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCountered:
    """Fired after the teacher proposes alternative times."""

    session_id: str
    teacher_id: str
    alternatives: List[Dict[str, datetime]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCancelled:
    """Fired after a session is cancelled."""

    session_id: str
    cancelled_by: str
    cancelled_at: datetime
    reason: Optional[str] = None
    refunded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCompleted:
    """Fired after a session is marked complete."""

    session_id: str
    completed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
