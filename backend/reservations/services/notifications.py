"""Notification payloads emitted by lifecycle transitions.

The core only builds structured payloads and hands them to a dispatcher.
Recipient resolution, opt-out preferences and delivery live elsewhere.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from reservations.models.reservation import Reservation
from reservations.services.change_detection import format_changes_for_notification
from reservations.timeutil import local_iso

logger = logging.getLogger(__name__)


class NotificationDispatcher(ABC):
    @abstractmethod
    def dispatch(self, payload: dict[str, Any]) -> None:
        """Deliver (or enqueue) one notification payload."""


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Logs each payload and retains nothing; the default until delivery is wired up."""

    def dispatch(self, payload):
        logger.info("Notification %s for %s", payload["action"], payload["eventId"])


class RecordingNotificationDispatcher(LoggingNotificationDispatcher):
    """Also keeps every payload in memory, for tests."""

    def __init__(self):
        self.sent: list[dict[str, Any]] = []

    def dispatch(self, payload):
        self.sent.append(payload)
        super().dispatch(payload)

    def actions(self) -> list[str]:
        return [payload["action"] for payload in self.sent]


def build_notification(
    reservation: Reservation,
    action: str,
    changes: Optional[list[dict[str, Any]]] = None,
    reason: Optional[str] = None,
) -> dict[str, Any]:
    data = reservation.room_reservation_data or {}
    return {
        "action": action,
        "eventId": reservation.event_id,
        "eventTitle": reservation.event_title,
        "requesterEmail": data.get("requesterEmail"),
        "requesterName": data.get("requesterName"),
        "startDateTime": local_iso(reservation.start_date_time),
        "endDateTime": local_iso(reservation.end_date_time),
        "status": reservation.status.value,
        "reason": reason,
        "changes": format_changes_for_notification(changes or []),
    }


def notify(
    dispatcher: Optional[NotificationDispatcher],
    reservation: Reservation,
    action: str,
    changes: Optional[list[dict[str, Any]]] = None,
    reason: Optional[str] = None,
) -> bool:
    """Build and dispatch; a dispatcher failure is logged, never raised."""
    if dispatcher is None:
        return False
    payload = build_notification(reservation, action, changes=changes, reason=reason)
    try:
        dispatcher.dispatch(payload)
    except Exception:
        logger.warning("Notification %s for %s failed", action, reservation.event_id, exc_info=True)
        return False
    return True


_default_dispatcher: NotificationDispatcher = LoggingNotificationDispatcher()


def get_notifier() -> NotificationDispatcher:
    """FastAPI dependency returning the process-wide dispatcher."""
    return _default_dispatcher
