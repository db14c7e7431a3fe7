"""
Session table.

Scalar fields used for querying live in their own columns; the nested
parts of the record (enrolled students, proposed alternatives) are kept
as JSON.
"""

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)

from ..database import Base


class SessionRecord(Base):
    __tablename__ = "tutoring_sessions"

    id = Column(String(26), primary_key=True)
    teacher_id = Column(String(64), nullable=False, index=True)
    student_id = Column(String(64), nullable=True, index=True)
    course_id = Column(String(64), nullable=False)

    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)

    capacity = Column(Integer, nullable=False, default=1)
    enrolled = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, index=True)
    session_type = Column(String(20), nullable=False)
    alternatives = Column(JSON, nullable=False, default=list)

    price = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False)
    transaction_id = Column(String(255), nullable=True)
    payment_attempts = Column(Integer, nullable=False, default=0)

    countered_from = Column(String(26), nullable=True)
    superseded_by = Column(String(26), nullable=True)

    cancelled_by = Column(String(64), nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    version = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_session_time_order"),
        CheckConstraint("capacity >= 1", name="ck_session_capacity"),
        Index("ix_sessions_teacher_start", "teacher_id", "start_time"),
    )
