# backend/tutorslot/repositories/sql.py
"""
SQLAlchemy repositories.

Each call runs in its own short transaction obtained from the session
factory, so the repositories are safe to share between threads. The
compare-and-set primitive is a single `UPDATE ... WHERE version = :expected`
statement whose row count tells whether the write won.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import String, cast, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ..core.exceptions import RepositoryException
from ..core.timezone_utils import ensure_aware, to_utc
from ..database import session_scope
from ..models.availability import WeeklyAvailabilityRecord
from ..models.session import SessionRecord
from ..schemas.availability import DayAvailability, WeeklyAvailability
from ..schemas.session import Session, SessionStatus
from .base_repository import AvailabilityRepository, SessionRepository

logger = logging.getLogger(__name__)


class SqlAvailabilityRepository(AvailabilityRepository):
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory
        self.logger = logging.getLogger(f"{__name__}.{WeeklyAvailabilityRecord.__name__}")

    @staticmethod
    def _to_schema(row: WeeklyAvailabilityRecord) -> WeeklyAvailability:
        return WeeklyAvailability(
            teacher_id=row.teacher_id,
            timezone=row.timezone,
            days=[DayAvailability.model_validate(entry) for entry in row.days or []],
            version=row.version,
            updated_at=ensure_aware(row.updated_at) if row.updated_at else None,
        )

    def get(self, teacher_id: str) -> Optional[WeeklyAvailability]:
        try:
            with session_scope(self.session_factory) as db:
                row = db.get(WeeklyAvailabilityRecord, teacher_id)
                return self._to_schema(row) if row is not None else None
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading availability for {teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to load availability: {str(e)}")

    @staticmethod
    def _to_columns(availability: WeeklyAvailability) -> Dict[str, Any]:
        return {
            "teacher_id": availability.teacher_id,
            "timezone": availability.timezone,
            "days": [entry.model_dump(mode="json") for entry in availability.days],
            "version": availability.version,
            "updated_at": to_utc(availability.updated_at) if availability.updated_at else None,
        }

    def upsert(self, availability: WeeklyAvailability) -> WeeklyAvailability:
        try:
            with session_scope(self.session_factory) as db:
                db.merge(WeeklyAvailabilityRecord(**self._to_columns(availability)))
            return availability.model_copy(deep=True)
        except SQLAlchemyError as e:
            self.logger.error(f"Error saving availability for {availability.teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to save availability: {str(e)}")

    def compare_and_set(self, availability: WeeklyAvailability, expected_version: int) -> bool:
        values = self._to_columns(availability)
        try:
            with session_scope(self.session_factory) as db:
                if expected_version == 0:
                    db.add(WeeklyAvailabilityRecord(**values))
                    db.flush()
                    written = True
                else:
                    teacher_id = values.pop("teacher_id")
                    stmt = (
                        update(WeeklyAvailabilityRecord)
                        .where(
                            WeeklyAvailabilityRecord.teacher_id == teacher_id,
                            WeeklyAvailabilityRecord.version == expected_version,
                        )
                        .values(**values)
                    )
                    written = db.execute(stmt).rowcount == 1
        except IntegrityError:
            # Someone else stored the first schedule
            written = False
        except SQLAlchemyError as e:
            self.logger.error(f"Error saving availability for {availability.teacher_id}: {str(e)}")
            raise RepositoryException(f"Failed to save availability: {str(e)}")
        if not written:
            self.logger.info(
                f"Stale availability write rejected for {availability.teacher_id} "
                f"(expected version {expected_version})"
            )
        return written


class SqlSessionRepository(SessionRepository):
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory
        self.logger = logging.getLogger(f"{__name__}.{SessionRecord.__name__}")

    @staticmethod
    def _to_columns(session: Session) -> Dict[str, Any]:
        return {
            "id": session.id,
            "teacher_id": session.teacher_id,
            "student_id": session.student_id,
            "course_id": session.course_id,
            "start_time": to_utc(session.start_time),
            "end_time": to_utc(session.end_time),
            "capacity": session.capacity,
            "enrolled": [entry.model_dump(mode="json") for entry in session.enrolled],
            "status": session.status.value,
            "session_type": session.session_type.value,
            "alternatives": [entry.model_dump(mode="json") for entry in session.alternatives],
            "price": session.price,
            "currency": session.currency,
            "transaction_id": session.transaction_id,
            "payment_attempts": session.payment_attempts,
            "countered_from": session.countered_from,
            "superseded_by": session.superseded_by,
            "cancelled_by": session.cancelled_by,
            "cancellation_reason": session.cancellation_reason,
            "created_at": to_utc(session.created_at),
            "updated_at": to_utc(session.updated_at),
            "version": session.version,
        }

    @staticmethod
    def _to_schema(row: SessionRecord) -> Session:
        # SQLite drops tzinfo; everything is written as UTC
        return Session.model_validate(
            {
                "id": row.id,
                "teacher_id": row.teacher_id,
                "student_id": row.student_id,
                "course_id": row.course_id,
                "start_time": ensure_aware(row.start_time),
                "end_time": ensure_aware(row.end_time),
                "capacity": row.capacity,
                "enrolled": row.enrolled or [],
                "status": row.status,
                "session_type": row.session_type,
                "alternatives": row.alternatives or [],
                "price": row.price,
                "currency": row.currency,
                "transaction_id": row.transaction_id,
                "payment_attempts": row.payment_attempts or 0,
                "countered_from": row.countered_from,
                "superseded_by": row.superseded_by,
                "cancelled_by": row.cancelled_by,
                "cancellation_reason": row.cancellation_reason,
                "created_at": ensure_aware(row.created_at),
                "updated_at": ensure_aware(row.updated_at),
                "version": row.version,
            }
        )

    def get(self, session_id: str) -> Optional[Session]:
        try:
            with session_scope(self.session_factory) as db:
                row = db.get(SessionRecord, session_id)
                return self._to_schema(row) if row is not None else None
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting session {session_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve session: {str(e)}")

    def upsert(self, session: Session) -> Session:
        try:
            with session_scope(self.session_factory) as db:
                db.merge(SessionRecord(**self._to_columns(session)))
            return session.model_copy(deep=True)
        except SQLAlchemyError as e:
            self.logger.error(f"Error saving session {session.id}: {str(e)}")
            raise RepositoryException(f"Failed to save session: {str(e)}")

    def compare_and_set(self, session: Session, expected_version: int) -> bool:
        values = self._to_columns(session)
        values.pop("id")
        stmt = (
            update(SessionRecord)
            .where(SessionRecord.id == session.id, SessionRecord.version == expected_version)
            .values(**values)
        )
        try:
            with session_scope(self.session_factory) as db:
                result = db.execute(stmt)
                written = result.rowcount == 1
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating session {session.id}: {str(e)}")
            raise RepositoryException(f"Failed to update session: {str(e)}")
        if not written:
            self.logger.info(
                f"Stale write rejected for session {session.id} (expected version {expected_version})"
            )
        return written

    def _query(self, *criteria, statuses: Optional[Iterable[SessionStatus]]) -> List[Session]:
        stmt = select(SessionRecord).where(*criteria)
        if statuses is not None:
            stmt = stmt.where(SessionRecord.status.in_([s.value for s in statuses]))
        stmt = stmt.order_by(SessionRecord.start_time, SessionRecord.created_at)
        try:
            with session_scope(self.session_factory) as db:
                return [self._to_schema(row) for row in db.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing sessions: {str(e)}")
            raise RepositoryException(f"Failed to list sessions: {str(e)}")

    def list_for_teacher(
        self, teacher_id: str, statuses: Optional[Iterable[SessionStatus]] = None
    ) -> List[Session]:
        return self._query(SessionRecord.teacher_id == teacher_id, statuses=statuses)

    def list_for_student(
        self, student_id: str, statuses: Optional[Iterable[SessionStatus]] = None
    ) -> List[Session]:
        candidates = self._query(
            or_(
                SessionRecord.student_id == student_id,
                cast(SessionRecord.enrolled, String).like(f'%"{student_id}"%'),
            ),
            statuses=statuses,
        )
        # The JSON text match is coarse; confirm against the parsed record
        return [
            item
            for item in candidates
            if item.student_id == student_id or student_id in item.enrolled_ids()
        ]

    def list_by_status(self, statuses: Iterable[SessionStatus]) -> List[Session]:
        return self._query(statuses=list(statuses))
