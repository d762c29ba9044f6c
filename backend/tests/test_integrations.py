"""Tests for the default calendar and notification wiring.

Covers:
- Without a configured provider the sync gate stays off and publish reports graph_synced false
- The default dispatcher logs notifications and keeps nothing in memory
- A provider installed at startup turns sync back on
"""
import logging

import pytest

from reservations.main import app
from reservations.models.user import Role
from reservations.services import calendar_sync
from reservations.services.calendar_sync import (
    CalendarSyncGate,
    InMemoryCalendarProvider,
    configure_calendar_provider,
    get_calendar_provider,
)
from reservations.services.lifecycle import ReservationLifecycle
from reservations.services.notifications import (
    LoggingNotificationDispatcher,
    RecordingNotificationDispatcher,
    get_notifier,
)
from tests.conftest import as_user, create_pending, create_test_user, insert_reservation, make_user


@pytest.fixture
def restore_provider():
    """Put back whatever provider the process had before the test."""
    original = calendar_sync._default_provider
    yield
    calendar_sync._default_provider = original


class TestDefaultCalendarProvider:
    """No hosted calendar unless one is installed."""

    def test_no_provider_by_default(self):
        assert get_calendar_provider() is None

    def test_gate_without_provider_is_disabled(self, db):
        gate = CalendarSyncGate(None, enabled=True)
        assert gate.enabled is False
        reservation = insert_reservation(db, make_user(db), graph_data={"id": "AAMk1"})
        assert gate.create(reservation).attempted is False
        assert gate.update(reservation, {"event_title"}).attempted is False

    def test_publish_without_provider(self, db, notifier):
        lifecycle = ReservationLifecycle(db, CalendarSyncGate(get_calendar_provider()), notifier)
        reservation = insert_reservation(db, make_user(db))
        result = lifecycle.publish(make_user(db, role=Role.approver), reservation.id, expected_version=1)
        assert result.reservation.status.value == "published"
        assert result.graph_synced is False
        assert result.reservation.graph_data is None

    def test_publish_through_api_without_provider(self, client):
        app.dependency_overrides.pop(get_calendar_provider)
        requester = create_test_user(client)
        approver = create_test_user(client, role="approver")
        pending = create_pending(client, requester)
        resp = client.put(f"/api/admin/events/{pending['id']}/publish", params=as_user(approver),
                          json={"_version": pending["_version"]})
        assert resp.status_code == 200
        body = resp.json()
        assert body["graph_synced"] is False
        assert body["event"]["graph_data"] is None

    def test_configured_provider_is_used(self, db, notifier, restore_provider):
        provider = InMemoryCalendarProvider()
        configure_calendar_provider(provider)
        assert get_calendar_provider() is provider

        lifecycle = ReservationLifecycle(db, CalendarSyncGate(get_calendar_provider(), enabled=True), notifier)
        reservation = insert_reservation(db, make_user(db))
        result = lifecycle.publish(make_user(db, role=Role.approver), reservation.id)
        assert result.graph_synced is True
        assert len(provider.calls_to("create")) == 1

        configure_calendar_provider(None)
        assert CalendarSyncGate(get_calendar_provider(), enabled=True).enabled is False


class TestDefaultNotifier:
    """Log-only delivery."""

    def test_default_dispatcher_keeps_nothing(self):
        dispatcher = get_notifier()
        assert isinstance(dispatcher, LoggingNotificationDispatcher)
        assert not isinstance(dispatcher, RecordingNotificationDispatcher)
        assert not hasattr(dispatcher, "sent")
        assert get_notifier() is dispatcher

    def test_default_dispatcher_logs(self, db, calendar, caplog):
        lifecycle = ReservationLifecycle(db, CalendarSyncGate(calendar, enabled=True), get_notifier())
        reservation = insert_reservation(db, make_user(db))
        with caplog.at_level(logging.INFO, logger="reservations.services.notifications"):
            lifecycle.reject(make_user(db, role=Role.approver), reservation.id, "Room closed")
        assert f"Notification rejected for {reservation.event_id}" in caplog.text
