"""External calendar sync gate.

Decides per transition whether the external calendar must be created or
updated, calls the provider, and never lets a provider failure undo a
committed transition. Callers learn the outcome through ``SyncOutcome.synced``.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from reservations.config import settings
from reservations.errors import ExternalSyncFailure
from reservations.models.reservation import Reservation
from reservations.timeutil import localize

logger = logging.getLogger(__name__)

# Touching any of these on a linked reservation requires an outward update
SYNCABLE_FIELDS = frozenset({
    "event_title", "event_description", "start_date_time", "end_date_time",
    "locations", "location_display_names", "categories",
})


class CalendarProvider(ABC):
    """Narrow contract of the hosted calendar (e.g. Microsoft Graph)."""

    @abstractmethod
    def create_calendar_event(self, calendar_owner: str, calendar_id: Optional[str],
                              payload: dict[str, Any]) -> dict[str, Any]:
        """Create an event; returns ``{id, iCalUId, webLink, changeKey}``."""

    @abstractmethod
    def update_calendar_event(self, calendar_owner: str, calendar_id: Optional[str],
                              external_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        """Update an event; returns ``{id, iCalUId, webLink, changeKey}``."""


class InMemoryCalendarProvider(CalendarProvider):
    """Provider that keeps events in memory and records every call.

    Test double only; ``fail_with`` makes every subsequent call raise.
    """

    def __init__(self):
        self.events: dict[str, dict[str, Any]] = {}
        self.calls: list[dict[str, Any]] = []
        self.fail_with: Optional[Exception] = None

    def calls_to(self, method: str) -> list[dict[str, Any]]:
        return [call for call in self.calls if call["method"] == method]

    def _linkage(self, external_id: str) -> dict[str, Any]:
        return {
            "id": external_id,
            "iCalUId": f"ical-{external_id}",
            "webLink": f"https://calendar.example.invalid/events/{external_id}",
            "changeKey": uuid.uuid4().hex[:16],
        }

    def create_calendar_event(self, calendar_owner, calendar_id, payload):
        self.calls.append({"method": "create", "calendarOwner": calendar_owner,
                           "calendarId": calendar_id, "payload": payload})
        if self.fail_with is not None:
            raise self.fail_with
        external_id = f"AAMk{uuid.uuid4().hex}"
        self.events[external_id] = dict(payload)
        return self._linkage(external_id)

    def update_calendar_event(self, calendar_owner, calendar_id, external_id, payload):
        self.calls.append({"method": "update", "calendarOwner": calendar_owner,
                           "calendarId": calendar_id, "externalId": external_id, "payload": payload})
        if self.fail_with is not None:
            raise self.fail_with
        if external_id not in self.events:
            raise ExternalSyncFailure(f"External event {external_id} not found")
        self.events[external_id].update(payload)
        return self._linkage(external_id)


@dataclass
class SyncOutcome:
    attempted: bool
    synced: bool
    graph_data: Optional[dict[str, Any]] = None


def build_payload(reservation: Reservation) -> dict[str, Any]:
    start = localize(reservation.start_date_time)
    end = localize(reservation.end_date_time)
    return {
        "subject": reservation.event_title,
        "startDateTime": start.isoformat() if start else None,
        "endDateTime": end.isoformat() if end else None,
        "eventDescription": reservation.event_description or "",
        "location": ", ".join(reservation.location_display_names or []),
        "categories": list(reservation.categories or []),
        "timeZone": settings.CALENDAR_TIMEZONE,
    }


class CalendarSyncGate:
    """Sync stays off when no provider is configured."""

    def __init__(self, provider: Optional[CalendarProvider], enabled: Optional[bool] = None):
        self.provider = provider
        wanted = settings.EXTERNAL_SYNC_ENABLED if enabled is None else enabled
        self.enabled = provider is not None and wanted

    def _calendar_owner(self, reservation: Reservation) -> str:
        return reservation.calendar_owner or settings.CALENDAR_OWNER

    def create(self, reservation: Reservation) -> SyncOutcome:
        """Create the external event (first publish, or restore of a linked record)."""
        if not self.enabled:
            return SyncOutcome(attempted=False, synced=False)
        try:
            result = self.provider.create_calendar_event(
                self._calendar_owner(reservation), settings.CALENDAR_ID or None, build_payload(reservation),
            )
        except Exception:
            logger.warning("External calendar create failed for %s", reservation.event_id, exc_info=True)
            return SyncOutcome(attempted=True, synced=False)
        graph_data = {key: result.get(key) for key in ("id", "iCalUId", "webLink", "changeKey")}
        logger.info("Created external event %s for %s", graph_data["id"], reservation.event_id)
        return SyncOutcome(attempted=True, synced=True, graph_data=graph_data)

    def needs_update(self, reservation: Reservation, touched_fields: Iterable[str]) -> bool:
        linked = bool((reservation.graph_data or {}).get("id"))
        return linked and bool(SYNCABLE_FIELDS.intersection(touched_fields))

    def update(self, reservation: Reservation, touched_fields: Iterable[str]) -> SyncOutcome:
        """Push changes of a linked reservation outward, if a syncable field changed."""
        if not self.enabled or not self.needs_update(reservation, touched_fields):
            return SyncOutcome(attempted=False, synced=False)
        external_id = reservation.graph_data["id"]
        try:
            result = self.provider.update_calendar_event(
                self._calendar_owner(reservation), settings.CALENDAR_ID or None,
                external_id, build_payload(reservation),
            )
        except Exception:
            logger.warning("External calendar update failed for %s", reservation.event_id, exc_info=True)
            return SyncOutcome(attempted=True, synced=False)
        graph_data = dict(reservation.graph_data)
        graph_data.update({key: result[key] for key in ("id", "iCalUId", "webLink", "changeKey") if result.get(key)})
        return SyncOutcome(attempted=True, synced=True, graph_data=graph_data)


_default_provider: Optional[CalendarProvider] = None


def configure_calendar_provider(provider: Optional[CalendarProvider]) -> None:
    """Install the hosted calendar client at startup; ``None`` turns sync off."""
    global _default_provider
    _default_provider = provider
    logger.info("External calendar provider: %s", type(provider).__name__ if provider else "none")


def get_calendar_provider() -> Optional[CalendarProvider]:
    """FastAPI dependency returning the configured provider, if any."""
    return _default_provider
