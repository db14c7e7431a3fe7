# backend/tutorslot/dependencies.py
"""
Service wiring.

Factory functions that build the booking services with their collaborators
taken from settings. An API layer or a scheduled job calls these once at
start-up and keeps the result.
"""

import logging
from typing import Optional

from sqlalchemy.orm import sessionmaker

from .core.booking_lock import TeacherLockManager
from .core.config import configure_logging, settings
from .core.preferences import BookingPreferences
from .repositories import RepositoryFactory
from .services.availability_store import AvailabilityStore
from .services.booking_lifecycle import BookingLifecycle
from .services.booking_orchestrator import BookingOrchestrator
from .services.notifications import NotificationSender
from .services.payment import PaymentGateway, StripePaymentGateway
from .services.slot_generator import SlotGenerator

logger = logging.getLogger(__name__)


def build_orchestrator(
    session_factory: Optional[sessionmaker] = None,
    *,
    payment_gateway: Optional[PaymentGateway] = None,
    notifier: Optional[NotificationSender] = None,
    preferences: Optional[BookingPreferences] = None,
) -> BookingOrchestrator:
    """
    Build a BookingOrchestrator and everything behind it.

    Args:
        session_factory: SQLAlchemy session factory; in-memory storage without one
        payment_gateway: Defaults to Stripe with the configured secret key
        notifier: Defaults to the logging sender
        preferences: Defaults to empty preferences (settings values apply)

    Returns:
        The orchestrator; its `lifecycle` exposes housekeeping such as
        `expire_stale_requests`
    """
    configure_logging()

    availability_store = AvailabilityStore(
        RepositoryFactory.create_availability_repository(session_factory)
    )
    session_repository = RepositoryFactory.create_session_repository(session_factory)
    slot_generator = SlotGenerator(availability_store, session_repository)
    lifecycle = BookingLifecycle(
        session_repository,
        slot_generator,
        TeacherLockManager.from_settings(),
    )
    orchestrator = BookingOrchestrator(
        availability_store,
        slot_generator,
        lifecycle,
        payment_gateway or StripePaymentGateway(),
        notifier=notifier,
        preferences=preferences,
    )
    logger.info(
        f"Booking services ready ({'sql' if session_factory is not None else 'in-memory'} storage, "
        f"environment {settings.environment})"
    )
    return orchestrator
