"""Requester-side reservation routes: drafts, edits and edit requests.

Routers only translate HTTP into lifecycle calls; guards, conflicts and
versioning live in ``services.lifecycle``.
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from reservations.database import get_db
from reservations.dependencies import get_actor, get_lifecycle
from reservations.models.user import User
from reservations.schemas.reservation import (
    CancelRequest,
    DraftCreate,
    DraftUpdate,
    EditRequestCreate,
    ReservationEdit,
    ReservationOut,
    RestoreRequest,
    ResubmitRequest,
    TransitionOut,
    VersionedRequest,
)
from reservations.services.lifecycle import ReservationLifecycle, TransitionResult, list_owned

logger = logging.getLogger(__name__)
router = APIRouter()


def transition_out(result: TransitionResult) -> TransitionOut:
    return TransitionOut(
        message=result.message,
        event=ReservationOut.model_validate(result.reservation),
        graph_synced=result.graph_synced,
        review_changes=result.review_changes,
        changes=result.changes,
    )


@router.post("/room-reservations/draft", response_model=TransitionOut, status_code=status.HTTP_201_CREATED)
def create_draft(
    payload: DraftCreate,
    actor: User = Depends(get_actor),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    """Start a new reservation request in draft."""
    requester = payload.requester.to_room_data() if payload.requester else None
    return transition_out(lifecycle.create_draft(actor, payload.calendar_fields(), requester=requester))


@router.put("/room-reservations/draft/{reservation_id}", response_model=TransitionOut)
def update_draft(
    reservation_id: str,
    payload: DraftUpdate,
    actor: User = Depends(get_actor),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    """Save a draft in progress (no completeness check)."""
    requester = payload.requester.to_room_data() if payload.requester else None
    result = lifecycle.update_draft(
        actor, reservation_id, payload.calendar_fields(),
        expected_version=payload.version, requester=requester,
    )
    return transition_out(result)


@router.post("/room-reservations/draft/{reservation_id}/submit", response_model=TransitionOut)
def submit_draft(
    reservation_id: str,
    payload: VersionedRequest = VersionedRequest(),
    actor: User = Depends(get_actor),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    """Submit a complete draft; approvers' drafts publish immediately."""
    return transition_out(lifecycle.submit_draft(actor, reservation_id, expected_version=payload.version))


@router.delete("/room-reservations/draft/{reservation_id}", response_model=TransitionOut)
def delete_draft(
    reservation_id: str,
    version: Optional[int] = Query(None, alias="_version"),
    actor: User = Depends(get_actor),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    """Discard a draft (soft delete)."""
    result = lifecycle.soft_delete(actor, reservation_id, expected_version=version, draft_only=True)
    return transition_out(result)


@router.put("/room-reservations/{reservation_id}/edit", response_model=TransitionOut)
def edit_reservation(
    reservation_id: str,
    payload: ReservationEdit,
    actor: User = Depends(get_actor),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    """Edit a pending or rejected request (owner, department colleague or approver)."""
    result = lifecycle.edit_reservation(
        actor, reservation_id, payload.calendar_fields(), expected_version=payload.version,
    )
    return transition_out(result)


@router.put("/room-reservations/{reservation_id}/resubmit", response_model=TransitionOut)
def resubmit(
    reservation_id: str,
    payload: ResubmitRequest,
    actor: User = Depends(get_actor),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    """Send a rejected request back for review without changes."""
    result = lifecycle.resubmit(actor, reservation_id, expected_version=payload.version, notes=payload.notes)
    return transition_out(result)


@router.put("/room-reservations/{reservation_id}/cancel", response_model=TransitionOut)
def cancel_reservation(
    reservation_id: str,
    payload: CancelRequest,
    actor: User = Depends(get_actor),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    """Owner withdraws their pending or published reservation."""
    result = lifecycle.cancel_reservation(
        actor, reservation_id, expected_version=payload.version, reason=payload.reason,
    )
    return transition_out(result)


@router.put("/room-reservations/{reservation_id}/restore", response_model=TransitionOut)
def owner_restore(
    reservation_id: str,
    payload: RestoreRequest,
    actor: User = Depends(get_actor),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    """Owner restores their own deleted or cancelled reservation (conflicts always checked)."""
    return transition_out(lifecycle.owner_restore(actor, reservation_id, expected_version=payload.version))


@router.get("/reservations/my", response_model=list[ReservationOut])
def my_reservations(actor: User = Depends(get_actor), db: Session = Depends(get_db)):
    """The actor's own reservations, excluding deleted ones."""
    return list_owned(db, actor)


@router.post("/events/{reservation_id}/request-edit", response_model=TransitionOut)
def request_edit(
    reservation_id: str,
    payload: EditRequestCreate,
    actor: User = Depends(get_actor),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    """Propose changes to a published reservation for approver review."""
    result = lifecycle.request_edit(
        actor, reservation_id, payload.requested_changes.calendar_fields(),
        reason=payload.reason, expected_version=payload.version,
    )
    return transition_out(result)


@router.put("/events/edit-requests/{reservation_id}/cancel", response_model=TransitionOut)
def cancel_edit_request(
    reservation_id: str,
    payload: VersionedRequest = VersionedRequest(),
    actor: User = Depends(get_actor),
    lifecycle: ReservationLifecycle = Depends(get_lifecycle),
):
    """Requester withdraws their own pending edit request."""
    return transition_out(lifecycle.cancel_edit_request(actor, reservation_id, expected_version=payload.version))
