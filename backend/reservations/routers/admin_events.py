"""Approver and admin routes for the review queue."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from reservations.database import get_db
from reservations.dependencies import get_actor, get_lifecycle
from reservations.errors import PermissionDenied
from reservations.models.reservation import ReservationStatus
from reservations.models.user import User
from reservations.routers.reservations import transition_out
from reservations.schemas.audit import AuditEntryOut
from reservations.schemas.reservation import (
    AdminUpdate,
    ApproveEditRequest,
    PublishRequest,
    RejectEditRequest,
    RejectRequest,
    ReservationOut,
    RestoreRequest,
    TransitionOut,
)
from reservations.services.audit import history_for
from reservations.services.lifecycle import ReservationLifecycle, find_reservation, list_reservations
from reservations.services.permissions import Action, authorize

logger = logging.getLogger(__name__)
router = APIRouter()


def _require_reviewer(actor: User) -> None:
    decision = authorize(actor, None, Action.VIEW_ALL)
    if not decision:
        raise PermissionDenied(decision.reason)


@router.get("/", response_model=list[ReservationOut])
def list_events(
    status: Optional[ReservationStatus] = Query(None),
    include_deleted: bool = Query(False),
    actor: User = Depends(get_actor),
    db: Session = Depends(get_db),
):
    """All reservations, optionally filtered by status."""
    return list_reservations(db, actor, status=status, include_deleted=include_deleted)


@router.get("/{reservation_id}", response_model=ReservationOut)
def get_event(reservation_id: str, actor: User = Depends(get_actor), db: Session = Depends(get_db)):
    """Fetch one reservation by id or eventId."""
    _require_reviewer(actor)
    return find_reservation(db, reservation_id)


@router.get("/{reservation_id}/audit", response_model=list[AuditEntryOut])
def get_audit_history(reservation_id: str, actor: User = Depends(get_actor), db: Session = Depends(get_db)):
    """Audit trail of a reservation, oldest first."""
    _require_reviewer(actor)
    reservation = find_reservation(db, reservation_id)
    return history_for(db, reservation.event_id)


@router.put("/{reservation_id}", response_model=TransitionOut)
def update_event(
    reservation_id: str,
    payload: AdminUpdate,
    actor: User = Depends(get_actor),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    """Approver save; department staff may save their department's fields."""
    result = lifecycle.admin_update(
        actor, reservation_id, payload.calendar_fields(),
        expected_version=payload.version, force=payload.force_update,
    )
    return transition_out(result)


@router.put("/{reservation_id}/publish", response_model=TransitionOut)
def publish_event(
    reservation_id: str,
    payload: PublishRequest,
    actor: User = Depends(get_actor),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    """Publish a pending reservation and mirror it to the external calendar."""
    result = lifecycle.publish(
        actor, reservation_id, expected_version=payload.version,
        force=payload.force_publish, notes=payload.notes,
    )
    return transition_out(result)


@router.put("/{reservation_id}/reject", response_model=TransitionOut)
def reject_event(
    reservation_id: str,
    payload: RejectRequest,
    actor: User = Depends(get_actor),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    """Reject a pending reservation with a reason."""
    result = lifecycle.reject(
        actor, reservation_id, payload.reason,
        expected_version=payload.version, allow_resubmission=payload.allow_resubmission,
    )
    return transition_out(result)


@router.put("/{reservation_id}/approve-edit", response_model=TransitionOut)
def approve_edit_request(
    reservation_id: str,
    payload: ApproveEditRequest,
    actor: User = Depends(get_actor),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    """Apply a pending edit request, with optional approver overrides."""
    overrides = payload.overrides.calendar_fields() if payload.overrides else None
    result = lifecycle.approve_edit_request(
        actor, reservation_id, expected_version=payload.version,
        overrides=overrides, notes=payload.notes, force=payload.force,
    )
    return transition_out(result)


@router.put("/{reservation_id}/reject-edit", response_model=TransitionOut)
def reject_edit_request(
    reservation_id: str,
    payload: RejectEditRequest,
    actor: User = Depends(get_actor),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    """Decline a pending edit request; the published event is unchanged."""
    result = lifecycle.reject_edit_request(actor, reservation_id, payload.reason, expected_version=payload.version)
    return transition_out(result)


@router.delete("/{reservation_id}", response_model=TransitionOut)
def delete_event(
    reservation_id: str,
    version: Optional[int] = Query(None, alias="_version"),
    reason: Optional[str] = Query(None),
    actor: User = Depends(get_actor),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    """Soft-delete any reservation. Deleting an already deleted one is a no-op."""
    return transition_out(lifecycle.soft_delete(actor, reservation_id, expected_version=version, reason=reason))


@router.put("/{reservation_id}/restore", response_model=TransitionOut)
def restore_event(
    reservation_id: str,
    payload: RestoreRequest,
    actor: User = Depends(get_actor),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    """Admin restore of a deleted or cancelled reservation (conflicts may be overridden)."""
    result = lifecycle.admin_restore(actor, reservation_id, expected_version=payload.version, force=payload.force)
    return transition_out(result)
