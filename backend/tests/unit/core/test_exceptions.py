# backend/tests/unit/core/test_exceptions.py
"""Domain exceptions carry a code, details and the HTTP status the API layer returns."""

from fastapi import HTTPException
import pytest

from tutorslot.core.exceptions import (
    AvailabilityOverlapException,
    CapacityExceededError,
    ConflictException,
    DomainException,
    InvalidTransitionError,
    NotEnrolledError,
    NotFoundException,
    PaymentFailedError,
    ServiceException,
    SlotUnavailableError,
    ValidationException,
)


@pytest.mark.parametrize(
    "exc, status_code, code",
    [
        (ValidationException("bad"), 400, "ValidationException"),
        (AvailabilityOverlapException("monday", "09:00-10:00", "09:30-11:00"), 400, "AVAILABILITY_OVERLAP"),
        (SlotUnavailableError(), 409, "SLOT_UNAVAILABLE"),
        (CapacityExceededError("s1", 4), 409, "CAPACITY_EXCEEDED"),
        (PaymentFailedError("s1", "declined"), 422, "PAYMENT_FAILED"),
        (NotEnrolledError("s1", "u1"), 404, "NOT_ENROLLED"),
        (InvalidTransitionError("s1", "refused", "accept"), 422, "INVALID_TRANSITION"),
        (NotFoundException("missing"), 404, "NotFoundException"),
        (ConflictException("stale"), 409, "ConflictException"),
        (ServiceException("boom"), 500, "ServiceException"),
    ],
)
def test_http_mapping(exc, status_code, code):
    http_exc = exc.to_http_exception()

    assert isinstance(http_exc, HTTPException)
    assert http_exc.status_code == status_code
    assert http_exc.detail["code"] == code
    assert http_exc.detail["message"] == exc.message
    assert http_exc.detail["details"] == exc.details


def test_specific_errors_are_domain_exceptions():
    for exc in (
        SlotUnavailableError(),
        CapacityExceededError("s1", 1),
        PaymentFailedError("s1"),
        NotEnrolledError("s1", "u1"),
        InvalidTransitionError("s1", "accepted", "refuse"),
    ):
        assert isinstance(exc, DomainException)


def test_payment_failure_is_retryable():
    exc = PaymentFailedError("s1")

    assert exc.retryable
    assert "unknown error" in exc.message


def test_invalid_transition_message_names_state_and_action():
    exc = InvalidTransitionError("s1", "completed", "cancel")

    assert str(exc) == "Cannot cancel session s1 while it is completed"
    assert exc.details == {"session_id": "s1", "current_status": "completed", "action": "cancel"}


def test_slot_unavailable_default_message_and_details():
    exc = SlotUnavailableError(details={"teacher_id": "t1"})

    assert "no longer available" in exc.message
    assert exc.details == {"teacher_id": "t1"}
