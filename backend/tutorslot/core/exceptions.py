# backend/tutorslot/core/exceptions.py
"""
Domain-specific exceptions for the tutorslot booking core.

These exceptions provide clear, business-focused error messages
that can be caught and handled appropriately at the API layer.
Every error is per-operation: callers recover by re-fetching
availability/slots and retrying with fresh state.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_http_exception(self) -> HTTPException:
        """Convert to the HTTPException the API layer returns."""
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message,
                "code": self.code,
                "details": self.details,
            },
        )


class ValidationException(DomainException):
    """Raised when submitted data is malformed (bad ranges, overlaps, bad durations)."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundException(DomainException):
    """Raised when a requested resource is not found."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""

    status_code = status.HTTP_409_CONFLICT


class BusinessRuleException(DomainException):
    """Raised when a business rule is violated."""

    status_code = HTTP_422_UNPROCESSABLE


class ServiceException(DomainException):
    """Raised when a service operation fails."""

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=self.status_code,
            detail={
                "message": self.message or "An error occurred processing your request",
                "code": self.code,
                "details": self.details if self.details else {},
            },
        )


# Specific business exceptions


class AvailabilityOverlapException(ValidationException):
    """Raised when two ranges submitted for the same weekday overlap."""

    def __init__(self, day: str, new_range: str, conflicting_range: str):
        super().__init__(
            message=f"Overlapping range on {day}: {new_range} conflicts with {conflicting_range}",
            code="AVAILABILITY_OVERLAP",
            details={
                "day": day,
                "new_range": new_range,
                "conflicting_range": conflicting_range,
            },
        )


class SlotUnavailableError(ConflictException):
    """Raised when the selected slot vanished between generation and request."""

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message or "This time slot is no longer available, please pick another slot",
            code="SLOT_UNAVAILABLE",
            details=details or {},
        )


class CapacityExceededError(ConflictException):
    """Raised when a session already holds as many students as its capacity."""

    def __init__(self, session_id: str, capacity: int):
        super().__init__(
            message="This session is full, please pick another slot",
            code="CAPACITY_EXCEEDED",
            details={"session_id": session_id, "capacity": capacity},
        )


class PaymentFailedError(BusinessRuleException):
    """Raised when payment capture fails; the session stays requested."""

    def __init__(self, session_id: str, reason: Optional[str] = None):
        super().__init__(
            message=f"Payment could not be captured: {reason or 'unknown error'}",
            code="PAYMENT_FAILED",
            details={"session_id": session_id, "reason": reason, "retryable": True},
        )

    @property
    def retryable(self) -> bool:
        return bool(self.details.get("retryable"))


class NotEnrolledError(NotFoundException):
    """Raised when attendance is recorded for a student who is not enrolled."""

    def __init__(self, session_id: str, student_id: str):
        super().__init__(
            message=f"Student {student_id} is not enrolled in session {session_id}",
            code="NOT_ENROLLED",
            details={"session_id": session_id, "student_id": student_id},
        )


class InvalidTransitionError(BusinessRuleException):
    """Raised when a transition is attempted from a state that does not allow it."""

    def __init__(self, session_id: str, current: str, action: str):
        super().__init__(
            message=f"Cannot {action} session {session_id} while it is {current}",
            code="INVALID_TRANSITION",
            details={"session_id": session_id, "current_status": current, "action": action},
        )


class RepositoryException(Exception):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as connection issues, query failures, or
    constraint violations.
    """
