"""Optimistic concurrency control for reservation writes.

Every reservation carries a ``version`` integer that increments on each write.
Clients send the version they last saw; ``conditional_update`` applies a
mutation only if the stored version (and, optionally, status) still match.

The write is a single compare-and-swap statement:

    UPDATE reservations
       SET ..., version = version + 1
     WHERE id = :id AND version = :read_version [AND status = :expected_status]

If no row matched, someone else committed in between and the caller gets a
``VersionConflict`` carrying the record's current version and status. There
are no row locks; losers re-read and retry or surface the conflict.

Callers that pass ``expected_version=None`` opt out of the client-side check
(backward compatibility). Their write is still guarded by the version read
inside this call, and a lost race there is retried.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from reservations.errors import NotFound, VersionConflict
from reservations.models.reservation import Reservation, ReservationStatus
from reservations.timeutil import utcnow

logger = logging.getLogger(__name__)

MAX_RETRY_ATTEMPTS = 3

_PROTECTED_COLUMNS = ("id", "event_id", "version", "created_at", "created_by")


@dataclass
class Mutation:
    """Field changes to apply atomically.

    values: column -> new value
    unset:  columns reset to NULL
    push:   JSON list column -> items appended to the stored list
    """

    values: dict[str, Any] = field(default_factory=dict)
    unset: tuple[str, ...] = ()
    push: dict[str, list[Any]] = field(default_factory=dict)

    def touched_fields(self) -> set[str]:
        return set(self.values) | set(self.unset) | set(self.push)


def _status_value(status) -> Optional[str]:
    if status is None:
        return None
    return status.value if isinstance(status, ReservationStatus) else str(status)


def _load(db: Session, reservation_id: str) -> Reservation:
    db.expire_all()
    reservation = db.get(Reservation, reservation_id)
    if reservation is None:
        raise NotFound("Event not found")
    return reservation


def conflict_for(reservation: Reservation) -> VersionConflict:
    """VersionConflict describing the record as currently stored."""
    modified_at = reservation.last_modified_date_time
    return VersionConflict(
        current_version=reservation.version,
        current_status=_status_value(reservation.status),
        last_modified_by=reservation.last_modified_by,
        last_modified_at=modified_at.isoformat() if modified_at else None,
    )


def _build_values(current: Reservation, mutation: Mutation, modified_by: Optional[str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for column, value in mutation.values.items():
        if column in _PROTECTED_COLUMNS:
            raise ValueError(f"Column {column!r} cannot be set through a mutation")
        values[column] = value
    for column in mutation.unset:
        values[column] = None
    for column, items in mutation.push.items():
        existing = list(getattr(current, column) or [])
        values[column] = existing + list(items)
    values["last_modified_date_time"] = utcnow()
    if modified_by:
        values["last_modified_by"] = modified_by
    return values


def conditional_update(
    db: Session,
    reservation_id: str,
    mutation: Mutation,
    expected_version: Optional[int] = None,
    expected_status: Optional[ReservationStatus] = None,
    modified_by: Optional[str] = None,
) -> Reservation:
    """Atomically apply ``mutation`` if the version/status guards hold.

    Returns the updated reservation (version incremented by exactly one).
    Raises NotFound if the record is absent and VersionConflict if either guard
    fails; in that case nothing is written.
    """
    expected_status_value = _status_value(expected_status)

    for attempt in range(1, MAX_RETRY_ATTEMPTS + 1):
        current = _load(db, reservation_id)

        if expected_version is not None and current.version != expected_version:
            logger.info(
                "Version conflict on %s: expected %s, stored %s",
                reservation_id, expected_version, current.version,
            )
            raise conflict_for(current)
        if expected_status_value is not None and _status_value(current.status) != expected_status_value:
            logger.info(
                "Status conflict on %s: expected %s, stored %s",
                reservation_id, expected_status_value, _status_value(current.status),
            )
            raise conflict_for(current)

        read_version = current.version
        values = _build_values(current, mutation, modified_by)

        stmt = (
            update(Reservation)
            .where(Reservation.id == reservation_id, Reservation.version == read_version)
            .values(**values, version=Reservation.version + 1)
            .execution_options(synchronize_session=False)
        )
        if expected_status_value is not None:
            stmt = stmt.where(Reservation.status == ReservationStatus(expected_status_value))

        result = db.execute(stmt)
        if result.rowcount == 1:
            db.commit()
            updated = _load(db, reservation_id)
            logger.debug("Reservation %s updated to version %d", reservation_id, updated.version)
            return updated

        # Lost the race between our read and our write
        db.rollback()
        if expected_version is not None or attempt == MAX_RETRY_ATTEMPTS:
            raise conflict_for(_load(db, reservation_id))
        logger.info("Retrying unversioned update of %s (attempt %d)", reservation_id, attempt)

    raise conflict_for(_load(db, reservation_id))


def attach_external_linkage(db: Session, reservation_id: str, version: int, graph_data: dict[str, Any]) -> bool:
    """Store the provider's reply to the transition that produced ``version``.

    Guarded on that version but does not bump it: the linkage belongs to the
    same transition. If another writer already moved the record on, the
    linkage is dropped and False is returned.
    """
    stmt = (
        update(Reservation)
        .where(Reservation.id == reservation_id, Reservation.version == version)
        .values(graph_data=graph_data)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount != 1:
        db.rollback()
        logger.warning("External linkage for %s dropped: record moved past version %d", reservation_id, version)
        return False
    db.commit()
    return True
