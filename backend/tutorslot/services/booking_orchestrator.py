# backend/tutorslot/services/booking_orchestrator.py
"""
Booking Orchestrator

Facade used by the API layer. It sequences the lifecycle with the payment
and notification collaborators:

- accept captures the price first and only then records `accepted`;
- cancelling a paid session asks for a refund;
- every step that matters to a participant emits a notification.

Notifications are fire-and-forget: a sender failure is logged and never
undoes or fails the booking operation.
"""

from datetime import timedelta
from decimal import Decimal
from itertools import islice
import logging
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from ..core.exceptions import DomainException, PaymentFailedError, ValidationException
from ..core.preferences import BookingPreferences
from ..core.timezone_utils import ensure_aware, get_timezone
from ..events.booking_events import (
    BookingAccepted,
    BookingCancelled,
    BookingCompleted,
    BookingCountered,
    BookingRefused,
    BookingRequested,
)
from ..schemas.availability import AvailableSlot, ProposedTime
from ..schemas.session import Attendance, Decision, Session, SessionStatus, SessionType
from .availability_store import AvailabilityStore
from .base import BaseService
from .booking_lifecycle import AlternativeInput, BookingLifecycle, CaptureHook
from .notifications import BookingEvent, LoggingNotificationSender, NotificationSender
from .payment import PaymentGateway
from .slot_generator import SlotGenerator

logger = logging.getLogger(__name__)


def capture_idempotency_key(session_id: str, attempt: int = 0) -> str:
    """Stable per capture attempt: retries of one attempt replay, a new attempt charges afresh."""
    return f"session:{session_id}:capture:{attempt}"


class BookingOrchestrator(BaseService):
    """Entry point for booking flows that involve payment or notification."""

    def __init__(
        self,
        availability_store: AvailabilityStore,
        slot_generator: SlotGenerator,
        lifecycle: BookingLifecycle,
        payment_gateway: PaymentGateway,
        notifier: Optional[NotificationSender] = None,
        preferences: Optional[BookingPreferences] = None,
    ) -> None:
        super().__init__()
        self.availability_store = availability_store
        self.slot_generator = slot_generator
        self.lifecycle = lifecycle
        self.payment_gateway = payment_gateway
        self.notifier = notifier or LoggingNotificationSender()
        self.preferences = preferences or BookingPreferences()

    # Discovery

    @BaseService.measure_operation("available_slots")
    def available_slots(
        self,
        teacher_id: str,
        duration_minutes: Optional[int] = None,
        horizon_days: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[AvailableSlot]:
        """Bookable slots, with unspecified arguments taken from the preferences."""
        duration = duration_minutes or self.preferences.default_duration_minutes
        horizon = self._horizon(horizon_days)
        cap = limit if limit is not None else self.preferences.slot_limit

        slots = self.slot_generator.generate_slots(teacher_id, duration, horizon)
        if cap is not None:
            return list(islice(slots, max(cap, 0)))
        return list(slots)

    def _horizon(self, horizon_days: Optional[int]) -> int:
        return horizon_days if horizon_days is not None else self.preferences.horizon_days

    # Student actions

    def request_booking(
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
        Request a slot offered by `available_slots`.

        Pass the same `horizon_days` the slot was listed with, if one was given.
        """
        session = self.lifecycle.request(
            teacher_id,
            student_id,
            slot,
            course_id,
            capacity=capacity,
            session_type=session_type,
            price=price,
            currency=currency or self.preferences.currency,
            horizon_days=self._horizon(horizon_days),
        )
        self._notify_requested(session, student_id)
        return session

    @BaseService.measure_operation("request_series")
    def request_series(
        self,
        teacher_id: str,
        student_id: str,
        slot: Any,
        course_id: str,
        weeks: int,
        *,
        capacity: int = 1,
        session_type: SessionType = SessionType.LIVE,
        price: Decimal = Decimal("0"),
        currency: Optional[str] = None,
        horizon_days: Optional[int] = None,
    ) -> List[Session]:
        """
        Book the same weekly slot for `weeks` consecutive weeks.

        All or nothing: when any week fails, the student is withdrawn from
        every session booked so far (which cancels the ones they created)
        and the error is re-raised.

        The first week must be an offered slot; later weeks may run past the
        horizon by the length of the series.
        """
        if weeks < 1:
            raise ValidationException(
                "A series needs at least one week", code="INVALID_SERIES", details={"weeks": weeks}
            )

        windows = self._weekly_windows(teacher_id, slot, weeks)
        horizon = self._horizon(horizon_days) + 7 * (weeks - 1)
        created: List[Session] = []
        try:
            for window in windows:
                created.append(
                    self.lifecycle.request(
                        teacher_id,
                        student_id,
                        window,
                        course_id,
                        capacity=capacity,
                        session_type=session_type,
                        price=price,
                        currency=currency or self.preferences.currency,
                        horizon_days=horizon,
                    )
                )
        except DomainException:
            self._rollback_series(created, student_id)
            raise

        for session in created:
            self._notify_requested(session, student_id)
        self.logger.info(
            f"Series of {weeks} session(s) requested by {student_id} with teacher {teacher_id}"
        )
        return created

    def _weekly_windows(self, teacher_id: str, slot: Any, weeks: int) -> List[ProposedTime]:
        # Same wall-clock time each week in the teacher's timezone, across DST changes
        tz = get_timezone(self.availability_store.get(teacher_id).timezone)
        local_start = ensure_aware(slot.start).astimezone(tz).replace(tzinfo=None)
        local_end = ensure_aware(slot.end).astimezone(tz).replace(tzinfo=None)
        windows = []
        for week in range(weeks):
            shift = timedelta(weeks=week)
            windows.append(
                ProposedTime(
                    start=tz.localize(local_start + shift),
                    end=tz.localize(local_end + shift),
                )
            )
        return windows

    def _rollback_series(self, created: Sequence[Session], student_id: str) -> None:
        for session in reversed(created):
            try:
                self.lifecycle.withdraw(session.id, student_id, reason="series booking failed")
            except DomainException as exc:
                self.logger.error(
                    f"Could not roll back session {session.id} of a failed series: {exc.message}"
                )

    def choose_alternative(
        self,
        session_id: str,
        index: int,
        *,
        payer_ref: Optional[str] = None,
        payment_method: Optional[str] = None,
    ) -> Session:
        """
        Book a proposed alternative and accept it straight away.

        The teacher consented by proposing the time, so the new session goes
        through the same payment-gated accept. The teacher is told about the new
        request first; if payment then fails it stays requested and
        PaymentFailedError propagates.
        """
        replacement = self.lifecycle.choose_alternative(session_id, index)
        self._notify_requested(replacement, replacement.student_id or "")
        return self.accept(replacement.id, payer_ref=payer_ref, payment_method=payment_method)

    def decline_alternatives(self, session_id: str) -> Session:
        session = self.lifecycle.decline_alternatives(session_id)
        self._notify(
            [session.teacher_id],
            BookingEvent.REFUSED,
            BookingRefused(session_id=session.id, teacher_id=session.teacher_id).to_dict(),
        )
        return session

    # Teacher actions

    @BaseService.measure_operation("accept")
    def accept(
        self,
        session_id: str,
        *,
        payer_ref: Optional[str] = None,
        payment_method: Optional[str] = None,
    ) -> Session:
        """
        Capture payment, then mark the session accepted.

        Args:
            payer_ref: Payment-provider customer reference (defaults to the student id)
            payment_method: Saved payment method to charge off-session

        Raises:
            PaymentFailedError: capture failed; the session is still requested (retryable)
        """
        captured: List[str] = []
        capture = self._capture_hook(captured, payer_ref, payment_method)
        try:
            session = self.lifecycle.respond(session_id, Decision.ACCEPT, capture=capture)
        except PaymentFailedError:
            raise
        except DomainException:
            # Payment went through but the accept could not be recorded
            for transaction_id in captured:
                self._refund(session_id, transaction_id)
            raise

        payload = BookingAccepted(
            session_id=session.id,
            teacher_id=session.teacher_id,
            start_time=session.start_time,
            end_time=session.end_time,
            amount=session.price,
            currency=session.currency,
            transaction_id=session.transaction_id,
        ).to_dict()
        self._notify(session.participant_ids(), BookingEvent.ACCEPTED, payload)
        return session

    def _capture_hook(
        self,
        captured: List[str],
        payer_ref: Optional[str],
        payment_method: Optional[str],
    ) -> CaptureHook:
        def capture(session: Session) -> Optional[str]:
            if session.price <= 0:
                return None
            metadata = {
                "idempotency_key": capture_idempotency_key(session.id, session.payment_attempts),
                "session_id": session.id,
                "teacher_id": session.teacher_id,
                "course_id": session.course_id,
            }
            if payment_method:
                metadata["payment_method"] = payment_method
            result = self.payment_gateway.capture(
                session.price,
                session.currency,
                payer_ref or session.student_id or "",
                metadata,
            )
            if not result.success:
                self.logger.warning(f"Payment failed for session {session.id}: {result.reason}")
                raise PaymentFailedError(session.id, result.reason)
            if result.transaction_id:
                captured.append(result.transaction_id)
            return result.transaction_id

        return capture

    def refuse(
        self, session_id: str, alternatives: Optional[Sequence[AlternativeInput]] = None
    ) -> Session:
        session = self.lifecycle.respond(session_id, Decision.REFUSE, alternatives)
        students = [uid for uid in session.participant_ids() if uid != session.teacher_id]
        if session.status == SessionStatus.COUNTERED:
            payload = BookingCountered(
                session_id=session.id,
                teacher_id=session.teacher_id,
                alternatives=[{"start": alt.start, "end": alt.end} for alt in session.alternatives],
            ).to_dict()
            self._notify(students, BookingEvent.COUNTERED, payload)
        else:
            payload = BookingRefused(session_id=session.id, teacher_id=session.teacher_id).to_dict()
            self._notify(students, BookingEvent.REFUSED, payload)
        return session

    # Either party

    @BaseService.measure_operation("cancel")
    def cancel(self, session_id: str, cancelled_by: str, reason: Optional[str] = None) -> Session:
        """Cancel, refund a captured payment, and tell everyone involved."""
        session = self.lifecycle.cancel(session_id, cancelled_by, reason)
        refunded = False
        if session.transaction_id:
            refunded = self._refund(session.id, session.transaction_id)

        payload = BookingCancelled(
            session_id=session.id,
            cancelled_by=cancelled_by,
            cancelled_at=session.updated_at,
            reason=reason,
            refunded=refunded,
        ).to_dict()
        self._notify(session.participant_ids(), BookingEvent.CANCELLED, payload)
        return session

    def record_attendance(
        self, session_id: str, student_id: str, attendance: Attendance
    ) -> Session:
        return self.lifecycle.record_attendance(session_id, student_id, attendance)

    def complete(self, session_id: str) -> Session:
        session = self.lifecycle.complete(session_id)
        payload = BookingCompleted(session_id=session.id, completed_at=session.updated_at).to_dict()
        self._notify(session.participant_ids(), BookingEvent.COMPLETED, payload)
        return session

    # Collaborator plumbing

    def _refund(self, session_id: str, transaction_id: str) -> bool:
        try:
            refunded = self.payment_gateway.refund(transaction_id)
        except DomainException as exc:
            self.logger.error(f"Refund for session {session_id} failed: {exc.message}")
            return False
        if not refunded:
            self.logger.error(
                f"Refund for session {session_id} ({transaction_id}) was not accepted"
            )
        return refunded

    def _notify_requested(self, session: Session, student_id: str) -> None:
        payload = BookingRequested(
            session_id=session.id,
            teacher_id=session.teacher_id,
            student_id=student_id,
            course_id=session.course_id,
            start_time=session.start_time,
            end_time=session.end_time,
        ).to_dict()
        self._notify([session.teacher_id], BookingEvent.REQUESTED, payload)

    def _notify(
        self, user_ids: Iterable[str], event: BookingEvent, payload: Mapping[str, Any]
    ) -> None:
        for user_id in user_ids:
            try:
                self.notifier.notify(user_id, event, payload)
            except Exception as exc:
                self.logger.warning(
                    f"Notification {event.value} to {user_id} failed: {exc}",
                    extra={"user_id": user_id, "event": event.value},
                )
