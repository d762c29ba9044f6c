"""Pytest fixtures — file-backed SQLite database, recreated for every test."""
import os
import uuid
from datetime import datetime, timezone

# Must be set before the application modules read their settings
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

import pytest  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from reservations.database import Base, get_db  # noqa: E402
from reservations.main import app  # noqa: E402
from reservations.services.calendar_sync import (  # noqa: E402
    CalendarSyncGate,
    InMemoryCalendarProvider,
    get_calendar_provider,
)
from reservations.services.lifecycle import ReservationLifecycle  # noqa: E402
from reservations.services.notifications import RecordingNotificationDispatcher, get_notifier  # noqa: E402

# Import all models so they register with Base.metadata
from reservations.models.user import Role, User                                # noqa: E402
from reservations.models.reservation import Reservation, ReservationStatus     # noqa: E402
from reservations.models.audit_entry import AuditEntry                         # noqa: E402,F401

SQLITE_URL = "sqlite:///./test.db"


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine):
    """Yield a database session bound to the per-test engine."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def calendar():
    """In-memory external calendar; inspect ``calls`` or set ``fail_with``."""
    return InMemoryCalendarProvider()


@pytest.fixture(scope="function")
def notifier():
    return RecordingNotificationDispatcher()


@pytest.fixture(scope="function")
def lifecycle(db, calendar, notifier):
    """State machine wired to the test session, for service-level tests."""
    return ReservationLifecycle(db, CalendarSyncGate(calendar, enabled=True), notifier)


@pytest.fixture(scope="function")
def client(db_engine, calendar, notifier):
    """FastAPI TestClient with database, calendar and notifier overridden."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def _override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_calendar_provider] = lambda: calendar
    app.dependency_overrides[get_notifier] = lambda: notifier
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers: API-level
# ---------------------------------------------------------------------------
def create_test_user(client: TestClient, email: str = None, role: str = "requester",
                     department: str = None, name: str = "Test User") -> dict:
    """Helper — POST /api/users and return response JSON."""
    resp = client.post("/api/users/", json={
        "email": email or f"{uuid.uuid4().hex[:8]}@example.org",
        "display_name": name,
        "role": role,
        "department": department,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


def as_user(user: dict) -> dict:
    """Query params identifying the acting user."""
    return {"actor_user_id": user["user_id"]}


def draft_payload(**overrides) -> dict:
    """A draft with every field required for submission."""
    payload = {
        "event_title": "Board Meeting",
        "event_description": "Quarterly board meeting",
        "start_date_time": "2026-11-02T10:00:00",
        "end_date_time": "2026-11-02T12:00:00",
        "locations": ["room-a"],
        "location_display_names": ["Room A"],
        "categories": ["Meeting"],
        "attendee_count": 20,
        "setup_time": "09:30",
        "door_open_time": "09:45",
    }
    payload.update(overrides)
    return payload


def create_draft(client: TestClient, user: dict, **overrides) -> dict:
    resp = client.post("/api/room-reservations/draft", params=as_user(user), json=draft_payload(**overrides))
    assert resp.status_code == 201, resp.text
    return resp.json()["event"]


def create_pending(client: TestClient, requester: dict, **overrides) -> dict:
    draft = create_draft(client, requester, **overrides)
    resp = client.post(
        f"/api/room-reservations/draft/{draft['id']}/submit",
        params=as_user(requester), json={"_version": draft["_version"]},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["event"]


def create_published(client: TestClient, requester: dict, approver: dict, **overrides) -> dict:
    pending = create_pending(client, requester, **overrides)
    resp = client.put(
        f"/api/admin/events/{pending['id']}/publish",
        params=as_user(approver), json={"_version": pending["_version"]},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["event"]


# ---------------------------------------------------------------------------
# Helpers: database-level
# ---------------------------------------------------------------------------
def make_user(db, email: str = None, role: Role = Role.requester, department: str = None) -> User:
    user = User(
        email=email or f"{uuid.uuid4().hex[:8]}@example.org",
        display_name="Test User",
        role=role,
        department=department,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def insert_reservation(db, owner: User, status: ReservationStatus = ReservationStatus.pending,
                       history: list = None, **fields) -> Reservation:
    """Insert a reservation directly, bypassing the lifecycle."""
    values = {
        "event_title": "Existing Event",
        "start_date_time": datetime(2026, 11, 2, 10, 0),
        "end_date_time": datetime(2026, 11, 2, 12, 0),
        "locations": ["room-a"],
        "location_display_names": ["Room A"],
        "categories": ["Meeting"],
        "setup_time": "09:30",
        "door_open_time": "09:45",
    }
    values.update(fields)
    if history is None:
        history = [{"status": status.value, "changedAt": datetime.now(timezone.utc).isoformat()}]
    reservation = Reservation(
        user_id=owner.user_id,
        status=status,
        is_deleted=status == ReservationStatus.deleted,
        version=values.pop("version", 1),
        room_reservation_data=values.pop("room_reservation_data", {
            "requesterId": owner.user_id,
            "requesterEmail": owner.email,
            "requesterName": owner.display_name,
            "department": owner.department,
            "resubmissionAllowed": True,
        }),
        status_history=history,
        **values,
    )
    db.add(reservation)
    db.commit()
    db.refresh(reservation)
    return reservation
