"""Wall-clock helpers for the organisation's calendar time zone.

Reservations store start/end as naive local times. Incoming aware datetimes
are converted into the calendar zone first; outgoing payloads to the external
calendar are localised back so the provider sees an unambiguous offset.
"""
from datetime import datetime, timezone
from typing import Optional

import pytz

from reservations.config import settings


def calendar_tz():
    return pytz.timezone(settings.CALENDAR_TIMEZONE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_local_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Normalise a datetime to naive wall-clock time in the calendar zone."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(microsecond=0)
    return value.astimezone(calendar_tz()).replace(tzinfo=None, microsecond=0)


def localize(value: Optional[datetime]) -> Optional[datetime]:
    """Attach the calendar zone to a stored naive wall-clock datetime."""
    if value is None:
        return None
    if value.tzinfo is not None:
        return value
    return calendar_tz().localize(value)


def local_iso(value: Optional[datetime]) -> Optional[str]:
    """ISO string without a zone suffix (the legacy local-time representation)."""
    if value is None:
        return None
    return value.strftime("%Y-%m-%dT%H:%M:%S")
