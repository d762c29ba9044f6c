"""Audit recorder — one insert-only entry per completed transition."""
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from reservations.models.audit_entry import AuditAction, AuditEntry
from reservations.models.reservation import Reservation
from reservations.models.user import User
from reservations.timeutil import utcnow

logger = logging.getLogger(__name__)

_SNAPSHOT_COLUMNS = (
    "id", "event_id", "user_id", "status", "is_deleted", "version",
    "event_title", "event_description", "start_date_time", "end_date_time",
    "locations", "location_display_names", "categories", "services", "attendee_count",
    "setup_time", "teardown_time", "door_open_time", "door_close_time",
    "room_reservation_data", "pending_edit_request", "graph_data",
    "reviewed_at", "reviewed_by", "rejection_reason", "previous_status",
    "deleted_at", "deleted_by", "cancelled_at", "cancel_reason",
)


def _json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value"):  # enums
        return value.value
    return value


def snapshot(reservation: Optional[Reservation]) -> Optional[dict[str, Any]]:
    """Serialize a reservation to a JSON-safe dict for the audit trail."""
    if reservation is None:
        return None
    return {column: _json_value(getattr(reservation, column)) for column in _SNAPSHOT_COLUMNS}


def record_transition(
    db: Session,
    event_id: str,
    action: AuditAction,
    actor: User,
    previous: Optional[dict[str, Any]],
    new: Optional[dict[str, Any]],
    changes: Optional[dict[str, Any]] = None,
    review_changes: Optional[list[dict[str, Any]]] = None,
    metadata: Optional[dict[str, Any]] = None,
) -> AuditEntry:
    entry = AuditEntry(
        event_id=event_id,
        action=action,
        performed_by=actor.user_id,
        performed_by_email=actor.email,
        timestamp=utcnow(),
        previous_state=previous,
        new_state=new,
        changes=changes or {},
        review_changes=review_changes or None,
        metadata_=metadata or {},
    )
    db.add(entry)
    db.commit()
    logger.info("Audit %s on %s by %s", action.value, event_id, actor.email)
    return entry


def history_for(db: Session, event_id: str) -> list[AuditEntry]:
    return (
        db.query(AuditEntry)
        .filter(AuditEntry.event_id == event_id)
        .order_by(AuditEntry.timestamp)
        .all()
    )
