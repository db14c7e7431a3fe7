"""Booking lifecycle events."""

from .booking_events import (
    BookingAccepted,
    BookingCancelled,
    BookingCompleted,
    BookingCountered,
    BookingRefused,
    BookingRequested,
)

__all__ = [
    "BookingRequested",
    "BookingAccepted",
    "BookingRefused",
    "BookingCountered",
    "BookingCancelled",
    "BookingCompleted",
]
