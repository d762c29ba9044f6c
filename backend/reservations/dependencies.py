"""FastAPI dependencies shared by the routers."""
from typing import Optional

from fastapi import Depends, Query
from sqlalchemy.orm import Session

from reservations.database import get_db
from reservations.errors import NotFound
from reservations.models.user import User
from reservations.services.calendar_sync import CalendarProvider, CalendarSyncGate, get_calendar_provider
from reservations.services.lifecycle import ReservationLifecycle
from reservations.services.notifications import NotificationDispatcher, get_notifier


def get_actor(
    actor_user_id: str = Query(..., description="ID of the user performing the request"),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the acting user. Authentication happens upstream of this service."""
    user = db.query(User).filter(User.user_id == actor_user_id).first()
    if not user:
        raise NotFound("User not found")
    return user


def get_lifecycle(
    db: Session = Depends(get_db),
    provider: Optional[CalendarProvider] = Depends(get_calendar_provider),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> ReservationLifecycle:
    return ReservationLifecycle(db, CalendarSyncGate(provider), notifier)
