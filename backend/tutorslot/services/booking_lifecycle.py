# backend/tutorslot/services/booking_lifecycle.py
"""
Booking Lifecycle

State machine of a single session:

    requested -> accepted | refused | countered | cancelled
    countered -> refused   (alternative chosen or declined)
    accepted  -> completed | cancelled
    refused, cancelled, completed are terminal

Creation and acceptance re-check conflicts inside the per-teacher critical
section of TeacherLockManager. Every update of an existing record is a
compare-and-set on `version`, so a concurrent writer surfaces as
InvalidTransitionError instead of a lost update.
"""

from datetime import datetime, timedelta
from decimal import Decimal
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from ..core.booking_lock import TeacherLockManager
from ..core.config import settings
from ..core.exceptions import (
    CapacityExceededError,
    InvalidTransitionError,
    NotEnrolledError,
    NotFoundException,
    PaymentFailedError,
    SlotUnavailableError,
    ValidationException,
)
from ..core.timezone_utils import ensure_aware, to_utc, utc_now
from ..repositories.base_repository import SessionRepository
from ..schemas.availability import ProposedTime
from ..schemas.session import (
    OPEN_STATUSES,
    Attendance,
    Decision,
    EnrolledStudent,
    Session,
    SessionStatus,
    SessionType,
)
from .base import BaseService
from .conflict_resolver import ConflictResolver
from .slot_generator import SlotGenerator

logger = logging.getLogger(__name__)

# Payment hook: returns the transaction id, raises PaymentFailedError on failure
CaptureHook = Callable[[Session], Optional[str]]
AlternativeInput = Union[ProposedTime, Mapping[str, Any]]


class BookingLifecycle(BaseService):
    """Creates sessions and moves them through their statuses."""

    def __init__(
        self,
        session_repository: SessionRepository,
        slot_generator: SlotGenerator,
        lock_manager: Optional[TeacherLockManager] = None,
        *,
        clock: Callable[[], datetime] = utc_now,
        max_alternatives: Optional[int] = None,
        request_expiry_days: Optional[int] = None,
    ) -> None:
        super().__init__()
        self.repository = session_repository
        self.slot_generator = slot_generator
        self.lock_manager = lock_manager or TeacherLockManager()
        self.clock = clock
        self.max_alternatives = (
            max_alternatives if max_alternatives is not None else settings.max_alternatives
        )
        self.request_expiry_days = (
            request_expiry_days if request_expiry_days is not None else settings.request_expiry_days
        )

    # Reads

    def get(self, session_id: str) -> Session:
        """
        Load a session.

        Raises:
            NotFoundException: unknown id
        """
        session = self.repository.get(session_id)
        if session is None:
            raise NotFoundException(
                f"Session {session_id} not found",
                code="SESSION_NOT_FOUND",
                details={"session_id": session_id},
            )
        return session

    def list_sessions(
        self, teacher_id: str, statuses: Optional[Iterable[SessionStatus]] = None
    ) -> List[Session]:
        return self.repository.list_for_teacher(teacher_id, statuses=statuses)

    def list_student_sessions(
        self, student_id: str, statuses: Optional[Iterable[SessionStatus]] = None
    ) -> List[Session]:
        return self.repository.list_for_student(student_id, statuses=statuses)

    # Creation

    @BaseService.measure_operation("request")
    def request(
        self,
        teacher_id: str,
        student_id: str,
        slot: Any,
        course_id: str,
        *,
        capacity: int = 1,
        session_type: SessionType = SessionType.LIVE,
        price: Decimal = Decimal("0"),
        currency: Optional[str] = None,
        horizon_days: Optional[int] = None,
    ) -> Session:
        """
        Ask for a session in a slot previously returned by the SlotGenerator.

        If an open group session of the same course already sits exactly on
        the slot, the student joins it instead of creating a new session.

        Args:
            slot: AvailableSlot (or anything with start/end)
            horizon_days: Horizon the slot was offered with (defaults to the
                generator's)

        Raises:
            ValidationException: bad capacity or price
            SlotUnavailableError: slot no longer generated, or taken by a pending request
            CapacityExceededError: the matching group session is full
        """
        if capacity < 1:
            raise ValidationException(
                "Capacity must be at least 1",
                code="INVALID_CAPACITY",
                details={"capacity": capacity},
            )
        price = Decimal(price)
        if price < 0:
            raise ValidationException(
                "Price cannot be negative", code="INVALID_PRICE", details={"price": str(price)}
            )
        start = ensure_aware(slot.start)
        end = ensure_aware(slot.end)
        window = ProposedTime(start=start, end=end)

        self.log_operation(
            "request", teacher_id=teacher_id, student_id=student_id, course_id=course_id
        )

        with self.lock_manager.hold(teacher_id):
            open_sessions = self.repository.list_for_teacher(teacher_id, statuses=OPEN_STATUSES)

            group = self._matching_group_session(open_sessions, course_id, start, end)
            if group is not None:
                return self._add_student(group, student_id)

            if not self.slot_generator.is_slot_available(teacher_id, start, end, horizon_days):
                raise SlotUnavailableError(
                    details={
                        "teacher_id": teacher_id,
                        "start": start.isoformat(),
                        "end": end.isoformat(),
                    }
                )

            pending = [s for s in open_sessions if s.status == SessionStatus.REQUESTED]
            conflicts = ConflictResolver.find_conflicts(window, pending)
            if conflicts:
                raise SlotUnavailableError(
                    "This time slot already has a pending request, please pick another slot",
                    details={
                        "teacher_id": teacher_id,
                        "conflicting_session_ids": [s.id for s in conflicts],
                    },
                )

            now = self.clock()
            session = Session(
                teacher_id=teacher_id,
                student_id=student_id,
                course_id=course_id,
                start_time=start,
                end_time=end,
                capacity=capacity,
                enrolled=[EnrolledStudent(student_id=student_id, enrolled_at=now)],
                status=SessionStatus.REQUESTED,
                session_type=session_type,
                price=price,
                currency=(currency or settings.default_currency).lower(),
                created_at=now,
                updated_at=now,
                version=1,
            )
            saved = self.repository.upsert(session)

        self.logger.info(f"Session {saved.id} requested by {student_id} with teacher {teacher_id}")
        return saved

    @staticmethod
    def _matching_group_session(
        sessions: Sequence[Session], course_id: str, start: datetime, end: datetime
    ) -> Optional[Session]:
        for session in sessions:
            if (
                session.is_group
                and session.course_id == course_id
                and session.start_time == start
                and session.end_time == end
            ):
                return session
        return None

    # Teacher response

    @BaseService.measure_operation("respond")
    def respond(
        self,
        session_id: str,
        decision: Decision,
        alternatives: Optional[Sequence[AlternativeInput]] = None,
        *,
        capture: Optional[CaptureHook] = None,
    ) -> Session:
        """
        Teacher's answer to a pending request.

        Accepting runs `capture` (when given) after the conflict re-check and
        writes `accepted` only if it returns; if it raises, the session stays
        requested and the error propagates. Refusing with alternatives moves
        the session to countered, without them to refused.

        Raises:
            InvalidTransitionError: session is not requested, or changed concurrently
            SlotUnavailableError: accepting would overlap an accepted session
            ValidationException: an alternative is malformed, in the past, or conflicting
        """
        decision = Decision(decision)
        session = self.get(session_id)
        self._require_status(session, decision.value, {SessionStatus.REQUESTED})

        if decision == Decision.ACCEPT:
            return self._accept(session, capture)

        proposals = self._validate_alternatives(session, alternatives or [])
        if proposals:
            updated = self._transition(
                session,
                "counter",
                {SessionStatus.REQUESTED},
                status=SessionStatus.COUNTERED,
                alternatives=proposals,
            )
            self.logger.info(
                f"Session {session_id} countered with {len(proposals)} alternative(s)"
            )
            return updated

        updated = self._transition(
            session, "refuse", {SessionStatus.REQUESTED}, status=SessionStatus.REFUSED
        )
        self.logger.info(f"Session {session_id} refused")
        return updated

    def _accept(self, session: Session, capture: Optional[CaptureHook]) -> Session:
        with self.lock_manager.hold(session.teacher_id):
            current = self.get(session.id)
            self._require_status(current, "accept", {SessionStatus.REQUESTED})

            accepted = [
                s
                for s in self.repository.list_for_teacher(
                    current.teacher_id, statuses=[SessionStatus.ACCEPTED]
                )
                if s.id != current.id
            ]
            conflicts = ConflictResolver.find_conflicts(current, accepted)
            if conflicts:
                raise SlotUnavailableError(
                    "The teacher already has an accepted session at this time",
                    details={
                        "session_id": current.id,
                        "conflicting_session_ids": [s.id for s in conflicts],
                    },
                )

            try:
                transaction_id = capture(current) if capture is not None else None
            except PaymentFailedError:
                self._record_failed_payment(current)
                raise

            updated = self._transition(
                current,
                "accept",
                {SessionStatus.REQUESTED},
                status=SessionStatus.ACCEPTED,
                transaction_id=transaction_id or current.transaction_id,
            )

        self.logger.info(f"Session {session.id} accepted")
        return updated

    def _record_failed_payment(self, session: Session) -> None:
        # The next accept is a new capture attempt with its own idempotency key
        try:
            self._transition(
                session,
                "record payment failure",
                {SessionStatus.REQUESTED},
                payment_attempts=session.payment_attempts + 1,
            )
        except InvalidTransitionError as exc:
            self.logger.warning(f"Could not record failed payment for {session.id}: {exc.message}")

    def _validate_alternatives(
        self, session: Session, alternatives: Sequence[AlternativeInput]
    ) -> List[ProposedTime]:
        now = ensure_aware(self.clock())
        accepted = self.repository.list_for_teacher(
            session.teacher_id, statuses=[SessionStatus.ACCEPTED]
        )

        proposals: List[ProposedTime] = []
        seen = set()
        for raw in alternatives:
            proposal = self._parse_alternative(raw)
            if proposal.start <= now:
                raise ValidationException(
                    "Alternative times must be in the future",
                    code="ALTERNATIVE_IN_PAST",
                    details={"start": proposal.start.isoformat()},
                )
            conflicts = ConflictResolver.find_conflicts(proposal, accepted)
            if conflicts:
                raise ValidationException(
                    "Alternative overlaps an accepted session",
                    code="ALTERNATIVE_CONFLICT",
                    details={
                        "start": proposal.start.isoformat(),
                        "end": proposal.end.isoformat(),
                        "conflicting_session_ids": [s.id for s in conflicts],
                    },
                )
            key = (to_utc(proposal.start), to_utc(proposal.end))
            if key in seen:
                continue
            seen.add(key)
            proposals.append(proposal)

        if len(proposals) > self.max_alternatives:
            raise ValidationException(
                f"At most {self.max_alternatives} alternatives can be proposed",
                code="TOO_MANY_ALTERNATIVES",
                details={"count": len(proposals), "max": self.max_alternatives},
            )
        return proposals

    @staticmethod
    def _parse_alternative(raw: AlternativeInput) -> ProposedTime:
        if isinstance(raw, ProposedTime):
            proposal = raw
        else:
            try:
                proposal = ProposedTime.model_validate(raw)
            except ValidationError as exc:
                raise ValidationException(
                    "Invalid alternative time",
                    code="INVALID_ALTERNATIVE",
                    details={"errors": exc.errors(include_url=False, include_context=False)},
                ) from exc
        return ProposedTime(start=ensure_aware(proposal.start), end=ensure_aware(proposal.end))

    # Student response to a counter-proposal

    @BaseService.measure_operation("choose_alternative")
    def choose_alternative(self, session_id: str, index: int) -> Session:
        """
        Book one of the proposed alternatives.

        A new requested session is created with `countered_from` pointing at
        the original, which moves to refused with `superseded_by` set.

        Returns:
            The new session (requested)
        """
        session = self.get(session_id)
        self._require_status(session, "choose alternative", {SessionStatus.COUNTERED})
        if index < 0 or index >= len(session.alternatives):
            raise ValidationException(
                f"No alternative at index {index}",
                code="INVALID_ALTERNATIVE_INDEX",
                details={"index": index, "available": len(session.alternatives)},
            )
        chosen = session.alternatives[index]

        with self.lock_manager.hold(session.teacher_id):
            current = self.get(session_id)
            self._require_status(current, "choose alternative", {SessionStatus.COUNTERED})

            now = ensure_aware(self.clock())
            if ensure_aware(chosen.start) <= now:
                raise SlotUnavailableError(
                    "The proposed time has already passed",
                    details={"session_id": session_id, "start": chosen.start.isoformat()},
                )

            blocking = [
                s
                for s in self.repository.list_for_teacher(
                    current.teacher_id, statuses=OPEN_STATUSES
                )
                if s.id != current.id
            ]
            conflicts = ConflictResolver.find_conflicts(chosen, blocking)
            if conflicts:
                raise SlotUnavailableError(
                    "The proposed time is no longer free",
                    details={
                        "session_id": session_id,
                        "conflicting_session_ids": [s.id for s in conflicts],
                    },
                )

            replacement = Session(
                teacher_id=current.teacher_id,
                student_id=current.student_id,
                course_id=current.course_id,
                start_time=chosen.start,
                end_time=chosen.end,
                capacity=current.capacity,
                enrolled=[
                    EnrolledStudent(student_id=entry.student_id, enrolled_at=now)
                    for entry in current.enrolled
                ],
                status=SessionStatus.REQUESTED,
                session_type=current.session_type,
                price=current.price,
                currency=current.currency,
                countered_from=current.id,
                created_at=now,
                updated_at=now,
                version=1,
            )
            self._transition(
                current,
                "choose alternative",
                {SessionStatus.COUNTERED},
                status=SessionStatus.REFUSED,
                superseded_by=replacement.id,
            )
            saved = self.repository.upsert(replacement)

        self.logger.info(f"Session {session_id} superseded by {saved.id}")
        return saved

    def decline_alternatives(self, session_id: str) -> Session:
        session = self.get(session_id)
        updated = self._transition(
            session, "decline alternatives", {SessionStatus.COUNTERED}, status=SessionStatus.REFUSED
        )
        self.logger.info(f"Alternatives for session {session_id} declined")
        return updated

    # After acceptance

    @BaseService.measure_operation("record_attendance")
    def record_attendance(
        self, session_id: str, student_id: str, attendance: Attendance
    ) -> Session:
        """
        Mark one enrolled student present/absent/pending.

        Raises:
            InvalidTransitionError: session neither accepted nor completed
            NotEnrolledError: student is not enrolled (nothing is written)
        """
        attendance = Attendance(attendance)
        session = self.get(session_id)
        self._require_status(
            session, "record attendance", {SessionStatus.ACCEPTED, SessionStatus.COMPLETED}
        )
        if student_id not in session.enrolled_ids():
            raise NotEnrolledError(session_id, student_id)

        enrolled = [
            entry.model_copy(update={"attendance": attendance})
            if entry.student_id == student_id
            else entry.model_copy()
            for entry in session.enrolled
        ]
        return self._transition(
            session,
            "record attendance",
            {SessionStatus.ACCEPTED, SessionStatus.COMPLETED},
            enrolled=enrolled,
        )

    def complete(self, session_id: str) -> Session:
        session = self.get(session_id)
        updated = self._transition(
            session, "complete", {SessionStatus.ACCEPTED}, status=SessionStatus.COMPLETED
        )
        self.logger.info(f"Session {session_id} completed")
        return updated

    @BaseService.measure_operation("cancel")
    def cancel(self, session_id: str, cancelled_by: str, reason: Optional[str] = None) -> Session:
        """Cancel a requested or accepted session. Refunds are the caller's business."""
        session = self.get(session_id)
        updated = self._transition(
            session,
            "cancel",
            {SessionStatus.REQUESTED, SessionStatus.ACCEPTED},
            status=SessionStatus.CANCELLED,
            cancelled_by=cancelled_by,
            cancellation_reason=reason,
        )
        self.logger.info(f"Session {session_id} cancelled by {cancelled_by}")
        return updated

    # Group sessions

    @BaseService.measure_operation("enroll")
    def enroll(self, session_id: str, student_id: str) -> Session:
        """
        Add a student to an open session.

        Enrolling an already enrolled student is a no-op.

        Raises:
            InvalidTransitionError: session is not requested/accepted
            CapacityExceededError: session is full
        """
        session = self.get(session_id)
        self._require_status(session, "enroll", OPEN_STATUSES)
        with self.lock_manager.hold(session.teacher_id):
            current = self.get(session_id)
            self._require_status(current, "enroll", OPEN_STATUSES)
            return self._add_student(current, student_id)

    def _add_student(self, session: Session, student_id: str) -> Session:
        if student_id in session.enrolled_ids():
            return session
        if session.is_full:
            raise CapacityExceededError(session.id, session.capacity)
        enrolled = [entry.model_copy() for entry in session.enrolled]
        enrolled.append(EnrolledStudent(student_id=student_id, enrolled_at=self.clock()))
        updated = self._transition(session, "enroll", OPEN_STATUSES, enrolled=enrolled)
        self.logger.info(
            f"Student {student_id} enrolled in session {session.id} "
            f"({len(enrolled)}/{session.capacity})"
        )
        return updated

    def withdraw(self, session_id: str, student_id: str, reason: Optional[str] = None) -> Session:
        """
        Remove a student from an open session.

        The last student leaving cancels the session instead.

        Raises:
            InvalidTransitionError: session is not requested/accepted
            NotEnrolledError: student is not enrolled
        """
        session = self.get(session_id)
        self._require_status(session, "withdraw", OPEN_STATUSES)
        if student_id not in session.enrolled_ids():
            raise NotEnrolledError(session_id, student_id)

        remaining = [entry.model_copy() for entry in session.enrolled if entry.student_id != student_id]
        if not remaining:
            return self.cancel(session_id, cancelled_by=student_id, reason=reason)

        changes: Dict[str, Any] = {"enrolled": remaining}
        if session.student_id == student_id:
            changes["student_id"] = remaining[0].student_id
        updated = self._transition(session, "withdraw", OPEN_STATUSES, **changes)
        self.logger.info(f"Student {student_id} withdrew from session {session_id}")
        return updated

    # Housekeeping

    def expire_stale_requests(self, max_age: Optional[timedelta] = None) -> List[Session]:
        """
        Cancel requests that waited longer than `max_age` for an answer.

        Never run implicitly. Without `max_age` the configured
        `request_expiry_days` applies; when that is unset nothing expires.
        Sessions changed concurrently are skipped.
        """
        if max_age is None:
            if self.request_expiry_days is None:
                return []
            max_age = timedelta(days=self.request_expiry_days)
        cutoff = ensure_aware(self.clock()) - max_age
        expired: List[Session] = []
        for session in self.repository.list_by_status([SessionStatus.REQUESTED]):
            if ensure_aware(session.created_at) > cutoff:
                continue
            try:
                expired.append(
                    self._transition(
                        session,
                        "expire",
                        {SessionStatus.REQUESTED},
                        status=SessionStatus.CANCELLED,
                        cancelled_by="system",
                        cancellation_reason="request expired",
                    )
                )
            except InvalidTransitionError:
                self.logger.info(f"Session {session.id} changed while expiring, skipped")
        if expired:
            self.logger.info(f"Expired {len(expired)} stale request(s)")
        return expired

    # Internals

    @staticmethod
    def _require_status(session: Session, action: str, allowed: Iterable[SessionStatus]) -> None:
        if session.status not in set(allowed):
            raise InvalidTransitionError(session.id, session.status.value, action)

    def _transition(
        self,
        session: Session,
        action: str,
        allowed: Iterable[SessionStatus],
        **changes: Any,
    ) -> Session:
        """Apply `changes` with a version-checked write."""
        self._require_status(session, action, allowed)
        updated = session.model_copy(
            update={**changes, "updated_at": self.clock(), "version": session.version + 1}
        )
        if not self.repository.compare_and_set(updated, session.version):
            latest = self.repository.get(session.id)
            current = latest.status.value if latest is not None else "missing"
            raise InvalidTransitionError(session.id, current, action)
        return updated
