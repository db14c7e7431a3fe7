# backend/tutorslot/services/notifications.py
"""
Notification collaborator.

Delivery (email, push, chat) lives outside the booking core. The core only
emits `notify(user_id, event, payload)`; senders must not raise, and the
orchestrator logs and drops any error that escapes one anyway.
"""

from enum import Enum
import logging
from typing import Any, Dict, List, Mapping, Protocol, Tuple

logger = logging.getLogger(__name__)


class BookingEvent(str, Enum):
    REQUESTED = "requested"
    ACCEPTED = "accepted"
    REFUSED = "refused"
    COUNTERED = "countered"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class NotificationSender(Protocol):
    def notify(self, user_id: str, event: BookingEvent, payload: Mapping[str, Any]) -> None:
        ...


class LoggingNotificationSender:
    """Default sender: writes each notification to the log."""

    def __init__(self) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)

    def notify(self, user_id: str, event: BookingEvent, payload: Mapping[str, Any]) -> None:
        self.logger.info(
            f"Notify {user_id}: {BookingEvent(event).value}",
            extra={"user_id": user_id, "event": BookingEvent(event).value, "payload": dict(payload)},
        )


class RecordingNotificationSender:
    """Keeps notifications in memory; handy for local runs and tests."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, BookingEvent, Dict[str, Any]]] = []

    def notify(self, user_id: str, event: BookingEvent, payload: Mapping[str, Any]) -> None:
        self.sent.append((user_id, BookingEvent(event), dict(payload)))

    def events_for(self, user_id: str) -> List[BookingEvent]:
        return [event for recipient, event, _ in self.sent if recipient == user_id]
