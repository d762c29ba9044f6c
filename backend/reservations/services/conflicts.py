"""Room/time scheduling conflict detection.

Overlap formula:  (candidate_start < other_end) AND (candidate_end > other_start)
Intervals are half-open, so an event ending at 12:00 does not collide with one
starting at 12:00.

Only ``published`` reservations occupy a room. Drafts, pending requests and
rejected, cancelled or deleted records never block a booking.

The check reads other records and decides before the caller's write; it is
not part of the same atomic statement, so two publishes racing on
soon-to-overlap reservations can both pass.
"""
import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from reservations.errors import SchedulingConflict
from reservations.models.reservation import Reservation, ReservationStatus
from reservations.timeutil import local_iso

logger = logging.getLogger(__name__)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open interval overlap; symmetric in its two intervals."""
    return a_start < b_end and a_end > b_start


def _room_set(rooms: Optional[Iterable[Any]]) -> set[str]:
    return {str(room) for room in (rooms or []) if room not in (None, "")}


def conflict_summary(reservation: Reservation) -> dict[str, Any]:
    return {
        "id": reservation.id,
        "eventTitle": reservation.event_title,
        "startDateTime": local_iso(reservation.start_date_time),
        "endDateTime": local_iso(reservation.end_date_time),
        "rooms": list(reservation.locations or []),
        "status": reservation.status.value,
    }


def find_conflicts(
    db: Session,
    rooms: Optional[Iterable[Any]],
    start: Optional[datetime],
    end: Optional[datetime],
    exclude_id: Optional[str] = None,
) -> list[dict[str, Any]]:
    """Return summaries of published reservations sharing a room and overlapping in time."""
    candidate_rooms = _room_set(rooms)
    if not candidate_rooms or start is None or end is None:
        return []

    # Time window is filtered in SQL; room membership is checked in Python
    # because locations is a JSON array.
    query = db.query(Reservation).filter(
        Reservation.status == ReservationStatus.published,
        Reservation.is_deleted.is_(False),
        Reservation.start_date_time < end,
        Reservation.end_date_time > start,
    )
    if exclude_id:
        query = query.filter(Reservation.id != exclude_id)

    conflicts = []
    for other in query.order_by(Reservation.start_date_time).all():
        if not candidate_rooms & _room_set(other.locations):
            continue
        if overlaps(start, end, other.start_date_time, other.end_date_time):
            conflicts.append(conflict_summary(other))
    return conflicts


def ensure_no_conflicts(
    db: Session,
    reservation: Reservation,
    rooms: Optional[Iterable[Any]] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    force: bool = False,
    allow_force: bool = False,
) -> None:
    """Raise SchedulingConflict if the proposed rooms/time collide.

    ``force`` skips the check, but only where ``allow_force`` is set by the
    caller (reviewer publish and admin restore). Requester transitions always
    run the check.
    """
    if force and allow_force:
        logger.info("Conflict check skipped by override for %s", reservation.id)
        return

    rooms = reservation.locations if rooms is None else rooms
    start = reservation.start_date_time if start is None else start
    end = reservation.end_date_time if end is None else end

    conflicts = find_conflicts(db, rooms, start, end, exclude_id=reservation.id)
    if conflicts:
        logger.info("Scheduling conflict for %s with %d reservation(s)", reservation.id, len(conflicts))
        raise SchedulingConflict(conflicts, version=reservation.version)
