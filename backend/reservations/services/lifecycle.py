"""Reservation lifecycle state machine.

    draft -> pending -> {published, rejected}
    rejected -> pending                     (resubmit, edit)
    published -> published                  (in-place edit, edit requests)
    any non-deleted -> deleted              (approver soft-delete)
    pending/published -> cancelled          (owner cancel)
    deleted/cancelled -> previous status    (restore)

Every transition authorizes the actor, checks the status precondition,
writes through ``conditional_update`` (version + expected status), then
syncs the external calendar, records one audit entry and emits a
notification. Guard and validation failures happen before any write.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from reservations.config import settings
from reservations.errors import InvalidTransition, NotFound, PermissionDenied, ValidationError
from reservations.models.audit_entry import AuditAction
from reservations.models.reservation import Reservation, ReservationStatus, TERMINAL_STATUSES
from reservations.models.user import Role, User
from reservations.services.audit import record_transition, snapshot
from reservations.services.calendar_sync import SYNCABLE_FIELDS, CalendarSyncGate
from reservations.services.change_detection import (
    KEY_FIELDS,
    detect_changes,
    has_key_changes,
    prune_applied_changes,
    values_are_different,
)
from reservations.services.concurrency import Mutation, attach_external_linkage, conditional_update, conflict_for
from reservations.services.conflicts import ensure_no_conflicts
from reservations.services.notifications import NotificationDispatcher, notify
from reservations.services.permissions import Action, authorize, can_edit_field, has_role, is_owner
from reservations.timeutil import local_iso, to_local_naive, utcnow

logger = logging.getLogger(__name__)

# Fields a client may write directly on a reservation
CALENDAR_FIELDS = (
    "event_title",
    "event_description",
    "start_date_time",
    "end_date_time",
    "locations",
    "location_display_names",
    "categories",
    "services",
    "attendee_count",
    "setup_time",
    "teardown_time",
    "door_open_time",
    "door_close_time",
    "setup_notes",
    "door_notes",
    "event_notes",
)

REQUESTER_FIELDS = ("requesterName", "requesterEmail", "department", "phone")

_LIST_FIELDS = ("locations", "location_display_names", "categories", "services")
_DATETIME_FIELDS = ("start_date_time", "end_date_time")
_TIME_SENSITIVE_FIELDS = ("locations", "start_date_time", "end_date_time")

REQUIRED_FOR_SUBMIT = (
    ("event_title", "Event title is required"),
    ("start_date_time", "Start date/time is required"),
    ("end_date_time", "End date/time is required"),
    ("locations", "At least one room must be selected"),
    ("categories", "At least one category must be selected"),
    ("setup_time", "Setup time is required"),
    ("door_open_time", "Door open time is required"),
)


@dataclass
class TransitionResult:
    reservation: Reservation
    graph_synced: Optional[bool] = None
    review_changes: list[dict[str, Any]] = field(default_factory=list)
    changes: list[dict[str, Any]] = field(default_factory=list)
    message: Optional[str] = None


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------

def resolve_restore_target(status_history: Optional[list[dict[str, Any]]],
                           current_status: ReservationStatus) -> ReservationStatus:
    """Latest history status that differs from the current one, else draft.

    A deleted entry is never a target, so a cancelled record restores to the
    state it was cancelled from and a deleted one may come back as cancelled.
    """
    skipped = {current_status.value, ReservationStatus.deleted.value}
    for entry in reversed(status_history or []):
        status = entry.get("status")
        if status and status not in skipped:
            try:
                return ReservationStatus(status)
            except ValueError:
                continue
    return ReservationStatus.draft


def validate_for_submit(reservation: Reservation) -> list[str]:
    errors = []
    for column, message in REQUIRED_FOR_SUBMIT:
        value = getattr(reservation, column)
        if value is None or value == "" or value == []:
            errors.append(message)
    return errors


def _check_times(start: Optional[datetime], end: Optional[datetime]) -> None:
    if start is not None and end is not None and end <= start:
        message = "End time must be after start time"
        raise ValidationError(message, [message])


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError("Invalid date/time", [f"Invalid date/time: {value}"])
    return to_local_naive(value)


def clean_fields(fields: Optional[dict[str, Any]]) -> dict[str, Any]:
    """Keep writable calendar fields and normalise them to their stored form."""
    cleaned = {}
    for column, value in (fields or {}).items():
        if column not in CALENDAR_FIELDS:
            continue
        if column in _DATETIME_FIELDS:
            value = _parse_datetime(value)
        elif column in _LIST_FIELDS:
            value = list(value or [])
        elif column in ("event_title", "event_description") and value is None:
            value = ""
        cleaned[column] = value
    return cleaned


def _json_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {
        column: local_iso(value) if isinstance(value, datetime) else value
        for column, value in fields.items()
    }


def _changes_summary(changes: list[dict[str, Any]]) -> dict[str, Any]:
    return {change["field"]: {"from": change["oldValue"], "to": change["newValue"]} for change in changes}


def _status_change(before: ReservationStatus, after: ReservationStatus) -> dict[str, Any]:
    return {"status": {"from": before.value, "to": after.value}}


def _history_entry(status: ReservationStatus, actor: User, reason: Optional[str] = None) -> dict[str, Any]:
    return {
        "status": status.value,
        "changedAt": utcnow().isoformat(),
        "changedBy": actor.user_id,
        "changedByEmail": actor.email,
        "reason": reason,
    }


def _merge_review_changes(existing: list[dict[str, Any]], new: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Fold new approver changes into those already captured, keeping the original oldValue."""
    merged = {change["field"]: dict(change) for change in existing or []}
    for change in new:
        previous = merged.get(change["field"])
        if previous is None:
            merged[change["field"]] = dict(change)
            continue
        if values_are_different(previous["oldValue"], change["newValue"]):
            previous["newValue"] = change["newValue"]
        else:
            # Reverted to what the requester submitted
            del merged[change["field"]]
    return list(merged.values())


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def find_reservation(db: Session, ident: str) -> Reservation:
    """Look up by internal id or by eventId."""
    reservation = (
        db.query(Reservation)
        .filter(or_(Reservation.id == ident, Reservation.event_id == ident))
        .first()
    )
    if reservation is None:
        raise NotFound("Event not found")
    return reservation


def list_reservations(
    db: Session,
    actor: User,
    status: Optional[ReservationStatus] = None,
    include_deleted: bool = False,
) -> list[Reservation]:
    decision = authorize(actor, None, Action.VIEW_ALL)
    if not decision:
        raise PermissionDenied(decision.reason)
    query = db.query(Reservation)
    if status is not None:
        query = query.filter(Reservation.status == status)
    elif not include_deleted:
        query = query.filter(Reservation.is_deleted.is_(False))
    return query.order_by(Reservation.start_date_time).all()


def list_owned(db: Session, actor: User) -> list[Reservation]:
    """The actor's own reservations, matched by user id or requester e-mail."""
    candidates = (
        db.query(Reservation)
        .filter(Reservation.is_deleted.is_(False))
        .order_by(Reservation.created_at.desc())
        .all()
    )
    return [reservation for reservation in candidates if is_owner(actor, reservation)]


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

class ReservationLifecycle:
    def __init__(self, db: Session, calendar: CalendarSyncGate, notifier: Optional[NotificationDispatcher] = None):
        self.db = db
        self.calendar = calendar
        self.notifier = notifier

    # -- plumbing -----------------------------------------------------------

    def _authorize(self, actor: User, reservation: Optional[Reservation], action: str) -> None:
        decision = authorize(actor, reservation, action)
        if not decision:
            logger.info("Denied %s on %s for %s", action, reservation.id if reservation else "-", actor.email)
            raise PermissionDenied(decision.reason)

    def _check_version(self, reservation: Reservation, expected_version: Optional[int]) -> None:
        """Reject a stale client before any status guard so it learns the current state."""
        if expected_version is not None and reservation.version != expected_version:
            logger.info("Stale version for %s: expected %s, stored %s",
                        reservation.id, expected_version, reservation.version)
            raise conflict_for(reservation)

    def _require_status(self, reservation: Reservation, allowed: tuple, verb: str) -> None:
        if reservation.status not in allowed:
            raise InvalidTransition(
                f"Cannot {verb} event with status: {reservation.status.value}",
                current_status=reservation.status.value,
            )

    def _write(self, reservation: Reservation, mutation: Mutation, actor: User,
               expected_version: Optional[int]) -> Reservation:
        return conditional_update(
            self.db,
            reservation.id,
            mutation,
            expected_version=expected_version,
            expected_status=reservation.status,
            modified_by=actor.email,
        )

    def _reload(self, reservation_id: str) -> Reservation:
        self.db.expire_all()
        return self.db.get(Reservation, reservation_id)

    def _sync_create(self, reservation: Reservation) -> tuple[Reservation, bool]:
        outcome = self.calendar.create(reservation)
        if outcome.synced:
            attach_external_linkage(self.db, reservation.id, reservation.version, outcome.graph_data)
            reservation = self._reload(reservation.id)
        return reservation, outcome.synced

    def _sync_update(self, reservation: Reservation, touched: set[str]) -> tuple[Reservation, Optional[bool]]:
        outcome = self.calendar.update(reservation, touched)
        if not outcome.attempted:
            return reservation, None
        if outcome.synced:
            attach_external_linkage(self.db, reservation.id, reservation.version, outcome.graph_data)
            reservation = self._reload(reservation.id)
        return reservation, outcome.synced

    def _sync_publish(self, reservation: Reservation) -> tuple[Reservation, bool]:
        if (reservation.graph_data or {}).get("id"):
            reservation, synced = self._sync_update(reservation, set(SYNCABLE_FIELDS))
            return reservation, bool(synced)
        return self._sync_create(reservation)

    def _audit(self, action: AuditAction, actor: User, before: Optional[dict], after: Reservation, **kwargs) -> None:
        record_transition(self.db, after.event_id, action, actor, before, snapshot(after), **kwargs)

    def _notify(self, reservation: Reservation, action: str, changes=None, reason=None) -> None:
        notify(self.notifier, reservation, action, changes=changes, reason=reason)

    def _conflict_check(self, reservation: Reservation, fields: dict[str, Any],
                        force: bool = False, allow_force: bool = False) -> None:
        ensure_no_conflicts(
            self.db,
            reservation,
            rooms=fields.get("locations", reservation.locations),
            start=fields.get("start_date_time", reservation.start_date_time),
            end=fields.get("end_date_time", reservation.end_date_time),
            force=force,
            allow_force=allow_force,
        )

    @staticmethod
    def _check_merged_times(reservation: Reservation, fields: dict[str, Any]) -> None:
        _check_times(
            fields.get("start_date_time", reservation.start_date_time),
            fields.get("end_date_time", reservation.end_date_time),
        )

    # -- drafts -------------------------------------------------------------

    def create_draft(
        self,
        actor: User,
        fields: dict[str, Any],
        requester: Optional[dict[str, Any]] = None,
    ) -> TransitionResult:
        self._authorize(actor, None, Action.CREATE_DRAFT)
        fields = clean_fields(fields)
        _check_times(fields.get("start_date_time"), fields.get("end_date_time"))

        requester_data = {
            "requesterId": actor.user_id,
            "requesterName": actor.display_name,
            "requesterEmail": actor.email,
            "department": actor.department,
            "phone": actor.phone,
            "resubmissionAllowed": True,
        }
        requester_data.update({key: value for key, value in (requester or {}).items() if key in REQUESTER_FIELDS})

        now = utcnow()
        reservation = Reservation(
            user_id=actor.user_id,
            calendar_owner=settings.CALENDAR_OWNER,
            status=ReservationStatus.draft,
            is_deleted=False,
            version=1,
            room_reservation_data=requester_data,
            status_history=[_history_entry(ReservationStatus.draft, actor, "Draft created")],
            created_by=actor.user_id,
            created_at=now,
            last_modified_date_time=now,
            last_modified_by=actor.email,
            **fields,
        )
        self.db.add(reservation)
        self.db.commit()
        self.db.refresh(reservation)

        self._audit(AuditAction.created, actor, None, reservation)
        logger.info("Created draft %s (%s) for %s", reservation.id, reservation.event_id, actor.email)
        return TransitionResult(reservation)

    def update_draft(
        self,
        actor: User,
        ident: str,
        fields: dict[str, Any],
        expected_version: Optional[int] = None,
        requester: Optional[dict[str, Any]] = None,
    ) -> TransitionResult:
        """Save a draft in progress; completeness is only checked at submit."""
        reservation = find_reservation(self.db, ident)
        self._authorize(actor, reservation, Action.UPDATE_DRAFT)
        self._check_version(reservation, expected_version)
        self._require_status(reservation, (ReservationStatus.draft,), "update draft")
        fields = clean_fields(fields)
        self._check_merged_times(reservation, fields)

        changes = detect_changes(reservation, fields)
        mutation = Mutation(values=dict(fields))
        if requester:
            data = dict(reservation.room_reservation_data or {})
            data.update({key: value for key, value in requester.items() if key in REQUESTER_FIELDS})
            mutation.values["room_reservation_data"] = data

        before = snapshot(reservation)
        updated = self._write(reservation, mutation, actor, expected_version)
        self._audit(AuditAction.updated, actor, before, updated, changes=_changes_summary(changes))
        logger.info("Updated draft %s (version %d)", updated.id, updated.version)
        return TransitionResult(updated, changes=changes)

    def submit_draft(self, actor: User, ident: str, expected_version: Optional[int] = None) -> TransitionResult:
        """Submit for review; an approver's submission publishes immediately."""
        reservation = find_reservation(self.db, ident)
        self._authorize(actor, reservation, Action.SUBMIT_DRAFT)
        self._check_version(reservation, expected_version)
        self._require_status(reservation, (ReservationStatus.draft,), "submit")

        errors = validate_for_submit(reservation)
        if errors:
            raise ValidationError("Draft is incomplete", errors)
        _check_times(reservation.start_date_time, reservation.end_date_time)

        now = utcnow()
        before = snapshot(reservation)

        if not has_role(actor, Role.approver):
            mutation = Mutation(
                values={"status": ReservationStatus.pending, "submitted_at": now},
                push={"status_history": [_history_entry(ReservationStatus.pending, actor, "Submitted for review")]},
            )
            updated = self._write(reservation, mutation, actor, expected_version)
            self._audit(AuditAction.submitted, actor, before, updated,
                        changes=_status_change(ReservationStatus.draft, ReservationStatus.pending))
            self._notify(updated, "submitted")
            logger.info("Submitted reservation %s (version %d)", updated.id, updated.version)
            return TransitionResult(updated)

        self._conflict_check(reservation, {})
        mutation = Mutation(
            values={
                "status": ReservationStatus.published,
                "submitted_at": now,
                "reviewed_at": now,
                "reviewed_by": actor.email,
                "published_at": now,
                "published_by": actor.email,
                "auto_published": True,
            },
            push={"status_history": [
                _history_entry(ReservationStatus.published, actor, "Auto-published on submission"),
            ]},
        )
        updated = self._write(reservation, mutation, actor, expected_version)
        updated, synced = self._sync_create(updated)
        self._audit(AuditAction.auto_published, actor, before, updated,
                    changes=_status_change(ReservationStatus.draft, ReservationStatus.published),
                    metadata={"graphSynced": synced})
        self._notify(updated, "published")
        logger.info("Auto-published reservation %s (version %d)", updated.id, updated.version)
        return TransitionResult(updated, graph_synced=synced)

    # -- requester edits ----------------------------------------------------

    def edit_reservation(
        self,
        actor: User,
        ident: str,
        fields: dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> TransitionResult:
        """Edit a pending or rejected request; a rejected one goes back to pending."""
        reservation = find_reservation(self.db, ident)
        self._authorize(actor, reservation, Action.EDIT)
        self._check_version(reservation, expected_version)
        self._require_status(reservation, (ReservationStatus.pending, ReservationStatus.rejected), "edit")

        data = reservation.room_reservation_data or {}
        was_rejected = reservation.status == ReservationStatus.rejected
        if was_rejected and data.get("resubmissionAllowed") is False:
            raise InvalidTransition(
                "Resubmission is not allowed for this reservation",
                current_status=reservation.status.value,
            )

        fields = clean_fields(fields)
        self._check_merged_times(reservation, fields)
        # Requester transitions never honour a conflict override
        self._conflict_check(reservation, fields)

        changes = detect_changes(reservation, fields)
        mutation = Mutation(values=dict(fields))
        if was_rejected:
            mutation.values["status"] = ReservationStatus.pending
            mutation.values["submitted_at"] = utcnow()
            mutation.unset = ("reviewed_at", "reviewed_by")
            mutation.push["status_history"] = [
                _history_entry(ReservationStatus.pending, actor, "Resubmitted with edits"),
            ]
            action = AuditAction.resubmit_with_edits
        else:
            mutation.push["status_history"] = [
                _history_entry(ReservationStatus.pending, actor, "Edited by requester"),
            ]
            action = AuditAction.edited

        before = snapshot(reservation)
        updated = self._write(reservation, mutation, actor, expected_version)
        summary = _changes_summary(changes)
        if was_rejected:
            summary.update(_status_change(ReservationStatus.rejected, ReservationStatus.pending))
        self._audit(action, actor, before, updated, changes=summary)
        if was_rejected:
            self._notify(updated, "resubmitted", changes=changes)
        logger.info("Edited reservation %s (version %d)", updated.id, updated.version)
        return TransitionResult(updated, changes=changes)

    def resubmit(
        self,
        actor: User,
        ident: str,
        expected_version: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        reservation = find_reservation(self.db, ident)
        self._authorize(actor, reservation, Action.RESUBMIT)
        self._check_version(reservation, expected_version)
        self._require_status(reservation, (ReservationStatus.rejected,), "resubmit")
        if (reservation.room_reservation_data or {}).get("resubmissionAllowed") is False:
            raise InvalidTransition(
                "Resubmission is not allowed for this reservation",
                current_status=reservation.status.value,
            )

        mutation = Mutation(
            values={"status": ReservationStatus.pending, "submitted_at": utcnow()},
            unset=("reviewed_at", "reviewed_by"),
            push={"status_history": [_history_entry(ReservationStatus.pending, actor, notes or "Resubmitted")]},
        )
        before = snapshot(reservation)
        updated = self._write(reservation, mutation, actor, expected_version)
        self._audit(AuditAction.resubmitted, actor, before, updated,
                    changes=_status_change(ReservationStatus.rejected, ReservationStatus.pending),
                    metadata={"notes": notes} if notes else None)
        self._notify(updated, "resubmitted", reason=notes)
        logger.info("Resubmitted reservation %s (version %d)", updated.id, updated.version)
        return TransitionResult(updated)

    def cancel_reservation(
        self,
        actor: User,
        ident: str,
        expected_version: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> TransitionResult:
        """Owner withdraws their own pending or published reservation."""
        reservation = find_reservation(self.db, ident)
        self._authorize(actor, reservation, Action.CANCEL)
        self._check_version(reservation, expected_version)
        self._require_status(reservation, (ReservationStatus.pending, ReservationStatus.published), "cancel")

        mutation = Mutation(
            values={
                "status": ReservationStatus.cancelled,
                "cancelled_at": utcnow(),
                "cancelled_by": actor.user_id,
                "cancel_reason": reason,
                "previous_status": reservation.status.value,
            },
            push={"status_history": [_history_entry(ReservationStatus.cancelled, actor, reason)]},
        )
        before = snapshot(reservation)
        previous = reservation.status
        updated = self._write(reservation, mutation, actor, expected_version)
        self._audit(AuditAction.cancelled, actor, before, updated,
                    changes=_status_change(previous, ReservationStatus.cancelled),
                    metadata={"reason": reason} if reason else None)
        self._notify(updated, "cancelled", reason=reason)
        logger.info("Cancelled reservation %s (version %d)", updated.id, updated.version)
        return TransitionResult(updated)

    # -- review -------------------------------------------------------------

    def admin_update(
        self,
        actor: User,
        ident: str,
        fields: dict[str, Any],
        expected_version: Optional[int] = None,
        force: bool = False,
    ) -> TransitionResult:
        """Approver save on any live reservation.

        Pending: the diff is captured as reviewChanges for the publish step.
        Published: edits go outward, prune an open edit request and notify the
        requester when a key field changed. Department staff may save their
        department's fields without approver rights.
        """
        reservation = find_reservation(self.db, ident)
        fields = clean_fields(fields)
        decision = authorize(actor, reservation, Action.REVIEW)
        if not decision and not (fields and all(can_edit_field(actor, column) for column in fields)):
            raise PermissionDenied(decision.reason)
        self._check_version(reservation, expected_version)
        self._require_status(
            reservation,
            (ReservationStatus.draft, ReservationStatus.pending,
             ReservationStatus.published, ReservationStatus.rejected),
            "update",
        )
        self._check_merged_times(reservation, fields)

        applied = [column for column, value in fields.items()
                   if values_are_different(getattr(reservation, column), value)]
        if reservation.status in (ReservationStatus.pending, ReservationStatus.published) and \
                any(column in _TIME_SENSITIVE_FIELDS for column in applied):
            self._conflict_check(reservation, fields, force=force, allow_force=bool(decision))

        changes = detect_changes(reservation, fields)
        mutation = Mutation(values=dict(fields))
        action = AuditAction.updated

        if reservation.status == ReservationStatus.pending:
            action = AuditAction.review_updated
            if changes:
                data = dict(reservation.room_reservation_data or {})
                data["reviewChanges"] = _merge_review_changes(data.get("reviewChanges"), changes)
                mutation.values["room_reservation_data"] = data

        edit_request = reservation.pending_edit_request
        pruned = None
        if reservation.status == ReservationStatus.published and edit_request \
                and edit_request.get("status") == "pending" and applied:
            pruned = dict(edit_request)
            pruned["requestedChanges"] = prune_applied_changes(edit_request.get("requestedChanges"), applied)
            mutation.values["pending_edit_request"] = pruned

        before = snapshot(reservation)
        updated = self._write(reservation, mutation, actor, expected_version)
        synced = None
        if updated.status == ReservationStatus.published:
            updated, synced = self._sync_update(updated, set(applied))

        metadata = {"graphSynced": synced} if synced is not None else None
        self._audit(action, actor, before, updated, changes=_changes_summary(changes), metadata=metadata)

        if updated.status == ReservationStatus.published and has_key_changes(changes) and updated.requester_email:
            self._notify(updated, "updated", changes=[change for change in changes if change["field"] in KEY_FIELDS])
        logger.info("Approver %s saved reservation %s (version %d)", actor.email, updated.id, updated.version)
        return TransitionResult(updated, graph_synced=synced, changes=changes)

    def publish(
        self,
        actor: User,
        ident: str,
        expected_version: Optional[int] = None,
        force: bool = False,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        reservation = find_reservation(self.db, ident)
        self._authorize(actor, reservation, Action.REVIEW)
        self._check_version(reservation, expected_version)
        self._require_status(reservation, (ReservationStatus.pending,), "publish")
        self._conflict_check(reservation, {}, force=force, allow_force=True)

        data = dict(reservation.room_reservation_data or {})
        review_changes = data.pop("reviewChanges", None) or []
        now = utcnow()
        mutation = Mutation(
            values={
                "status": ReservationStatus.published,
                "reviewed_at": now,
                "reviewed_by": actor.email,
                "published_at": now,
                "published_by": actor.email,
                "room_reservation_data": data,
            },
            push={"status_history": [_history_entry(ReservationStatus.published, actor, notes)]},
        )
        before = snapshot(reservation)
        updated = self._write(reservation, mutation, actor, expected_version)
        updated, synced = self._sync_publish(updated)

        metadata = {"graphSynced": synced}
        if force:
            metadata["forcePublish"] = True
        self._audit(AuditAction.published, actor, before, updated,
                    changes=_status_change(ReservationStatus.pending, ReservationStatus.published),
                    review_changes=review_changes, metadata=metadata)
        self._notify(updated, "published", changes=review_changes, reason=notes)
        logger.info("Published reservation %s (version %d)", updated.id, updated.version)
        return TransitionResult(updated, graph_synced=synced, review_changes=review_changes)

    def reject(
        self,
        actor: User,
        ident: str,
        reason: Optional[str],
        expected_version: Optional[int] = None,
        allow_resubmission: bool = True,
    ) -> TransitionResult:
        reservation = find_reservation(self.db, ident)
        self._authorize(actor, reservation, Action.REVIEW)
        self._check_version(reservation, expected_version)
        self._require_status(reservation, (ReservationStatus.pending,), "reject")
        if not reason or not reason.strip():
            raise ValidationError("Rejection reason is required", ["Rejection reason is required"])

        data = dict(reservation.room_reservation_data or {})
        data["resubmissionAllowed"] = allow_resubmission
        now = utcnow()
        mutation = Mutation(
            values={
                "status": ReservationStatus.rejected,
                "reviewed_at": now,
                "reviewed_by": actor.email,
                "rejected_at": now,
                "rejected_by": actor.email,
                "rejection_reason": reason,
                "room_reservation_data": data,
            },
            push={"status_history": [_history_entry(ReservationStatus.rejected, actor, reason)]},
        )
        before = snapshot(reservation)
        updated = self._write(reservation, mutation, actor, expected_version)
        self._audit(AuditAction.rejected, actor, before, updated,
                    changes=_status_change(ReservationStatus.pending, ReservationStatus.rejected),
                    metadata={"reason": reason, "resubmissionAllowed": allow_resubmission})
        self._notify(updated, "rejected", reason=reason)
        logger.info("Rejected reservation %s (version %d)", updated.id, updated.version)
        return TransitionResult(updated)

    # -- edit requests on published events ----------------------------------

    def _open_edit_request(self, reservation: Reservation) -> dict[str, Any]:
        edit_request = reservation.pending_edit_request
        if not edit_request or edit_request.get("status") != "pending":
            raise NotFound("No pending edit request found")
        return edit_request

    def request_edit(
        self,
        actor: User,
        ident: str,
        requested_changes: dict[str, Any],
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> TransitionResult:
        reservation = find_reservation(self.db, ident)
        self._authorize(actor, reservation, Action.REQUEST_EDIT)
        self._check_version(reservation, expected_version)
        self._require_status(reservation, (ReservationStatus.published,), "request edit on")
        existing = reservation.pending_edit_request
        if existing and existing.get("status") == "pending":
            raise InvalidTransition("An edit request is already pending for this event",
                                    current_status=reservation.status.value)

        requested = clean_fields(requested_changes)
        requested = {column: value for column, value in requested.items()
                     if values_are_different(getattr(reservation, column), value)}
        if not requested:
            raise ValidationError("No changes requested", ["At least one field must change"])
        self._check_merged_times(reservation, requested)

        edit_request = {
            "id": str(uuid.uuid4()),
            "requestedAt": utcnow().isoformat(),
            "requestedBy": actor.user_id,
            "requestedByEmail": actor.email,
            "requestedChanges": _json_fields(requested),
            "reason": reason,
            "status": "pending",
        }
        changes = detect_changes(reservation, requested)
        before = snapshot(reservation)
        updated = self._write(reservation, Mutation(values={"pending_edit_request": edit_request}), actor,
                              expected_version)
        self._audit(AuditAction.edit_requested, actor, before, updated,
                    changes=_changes_summary(changes), metadata={"reason": reason} if reason else None)
        self._notify(updated, "edit_requested", changes=changes, reason=reason)
        logger.info("Edit requested on %s by %s", updated.id, actor.email)
        return TransitionResult(updated, changes=changes)

    def cancel_edit_request(self, actor: User, ident: str,
                            expected_version: Optional[int] = None) -> TransitionResult:
        reservation = find_reservation(self.db, ident)
        self._authorize(actor, reservation, Action.CANCEL_EDIT_REQUEST)
        self._check_version(reservation, expected_version)
        edit_request = dict(self._open_edit_request(reservation))
        edit_request.update({
            "status": "cancelled",
            "reviewedAt": utcnow().isoformat(),
            "reviewedBy": actor.email,
            "reviewNotes": "Cancelled by requester",
        })
        before = snapshot(reservation)
        updated = self._write(reservation, Mutation(values={"pending_edit_request": edit_request}), actor,
                              expected_version)
        self._audit(AuditAction.edit_request_cancelled, actor, before, updated)
        logger.info("Edit request on %s cancelled by requester", updated.id)
        return TransitionResult(updated)

    def approve_edit_request(
        self,
        actor: User,
        ident: str,
        expected_version: Optional[int] = None,
        overrides: Optional[dict[str, Any]] = None,
        notes: Optional[str] = None,
        force: bool = False,
    ) -> TransitionResult:
        """Apply the requested changes, with approver overrides taking precedence."""
        reservation = find_reservation(self.db, ident)
        self._authorize(actor, reservation, Action.REVIEW)
        self._check_version(reservation, expected_version)
        self._require_status(reservation, (ReservationStatus.published,), "approve edit request on")
        edit_request = self._open_edit_request(reservation)

        fields = clean_fields(edit_request.get("requestedChanges"))
        fields.update(clean_fields(overrides))
        self._check_merged_times(reservation, fields)
        if any(column in _TIME_SENSITIVE_FIELDS for column in fields):
            self._conflict_check(reservation, fields, force=force, allow_force=True)

        changes = detect_changes(reservation, fields)
        mutation = Mutation(values=dict(fields), unset=("pending_edit_request",))
        before = snapshot(reservation)
        updated = self._write(reservation, mutation, actor, expected_version)
        updated, synced = self._sync_update(updated, set(fields))

        self._audit(AuditAction.edit_approved, actor, before, updated, changes=_changes_summary(changes),
                    metadata={"editRequestId": edit_request.get("id"), "notes": notes, "graphSynced": synced})
        key_changes = [change for change in changes if change["field"] in KEY_FIELDS]
        self._notify(updated, "edit_approved", changes=key_changes, reason=notes)
        logger.info("Edit request on %s approved (version %d)", updated.id, updated.version)
        return TransitionResult(updated, graph_synced=synced, changes=changes)

    def reject_edit_request(
        self,
        actor: User,
        ident: str,
        reason: Optional[str],
        expected_version: Optional[int] = None,
    ) -> TransitionResult:
        reservation = find_reservation(self.db, ident)
        self._authorize(actor, reservation, Action.REVIEW)
        self._check_version(reservation, expected_version)
        edit_request = self._open_edit_request(reservation)
        if not reason or not reason.strip():
            raise ValidationError("Rejection reason is required", ["Rejection reason is required"])

        before = snapshot(reservation)
        updated = self._write(reservation, Mutation(unset=("pending_edit_request",)), actor, expected_version)
        self._audit(AuditAction.edit_rejected, actor, before, updated,
                    metadata={"editRequestId": edit_request.get("id"), "reason": reason,
                              "requestedChanges": edit_request.get("requestedChanges")})
        self._notify(updated, "edit_rejected", reason=reason)
        logger.info("Edit request on %s rejected", updated.id)
        return TransitionResult(updated)

    # -- delete / restore ---------------------------------------------------

    def soft_delete(
        self,
        actor: User,
        ident: str,
        expected_version: Optional[int] = None,
        reason: Optional[str] = None,
        draft_only: bool = False,
    ) -> TransitionResult:
        """Approvers delete anything; owners may only discard their own draft."""
        reservation = find_reservation(self.db, ident)
        already_deleted = reservation.is_deleted or reservation.status == ReservationStatus.deleted
        was_draft = reservation.status == ReservationStatus.draft or (
            already_deleted and reservation.previous_status == ReservationStatus.draft.value
        )
        if draft_only and not was_draft:
            raise NotFound("Draft not found")
        if was_draft:
            self._authorize(actor, reservation, Action.UPDATE_DRAFT)
        else:
            self._authorize(actor, reservation, Action.DELETE)

        if already_deleted:
            return TransitionResult(reservation, message="Event already deleted")
        self._check_version(reservation, expected_version)

        previous = reservation.status
        mutation = Mutation(
            values={
                "status": ReservationStatus.deleted,
                "is_deleted": True,
                "deleted_at": utcnow(),
                "deleted_by": actor.user_id,
                "deleted_by_email": actor.email,
                "previous_status": previous.value,
            },
            push={"status_history": [_history_entry(ReservationStatus.deleted, actor, reason)]},
        )
        before = snapshot(reservation)
        updated = self._write(reservation, mutation, actor, expected_version)
        self._audit(AuditAction.deleted, actor, before, updated,
                    changes=_status_change(previous, ReservationStatus.deleted),
                    metadata={"reason": reason} if reason else None)
        logger.info("Deleted reservation %s (version %d)", updated.id, updated.version)
        return TransitionResult(updated, message="Event deleted")

    def admin_restore(self, actor: User, ident: str, expected_version: Optional[int] = None,
                      force: bool = False) -> TransitionResult:
        reservation = find_reservation(self.db, ident)
        self._authorize(actor, reservation, Action.ADMIN_RESTORE)
        self._check_version(reservation, expected_version)
        return self._restore(actor, reservation, expected_version, force=force, allow_force=True)

    def owner_restore(self, actor: User, ident: str, expected_version: Optional[int] = None) -> TransitionResult:
        reservation = find_reservation(self.db, ident)
        self._authorize(actor, reservation, Action.OWNER_RESTORE)
        self._check_version(reservation, expected_version)
        return self._restore(actor, reservation, expected_version)

    def _restore(self, actor: User, reservation: Reservation, expected_version: Optional[int],
                 force: bool = False, allow_force: bool = False) -> TransitionResult:
        if reservation.status not in TERMINAL_STATUSES:
            raise NotFound("Event is not deleted or cancelled")

        source = reservation.status
        target = resolve_restore_target(reservation.status_history, source)
        if target in (ReservationStatus.pending, ReservationStatus.published):
            self._conflict_check(reservation, {}, force=force, allow_force=allow_force)

        mutation = Mutation(
            values={"status": target, "is_deleted": False},
            push={"status_history": [_history_entry(target, actor, f"Restored from {source.value}")]},
        )
        if source == ReservationStatus.deleted:
            mutation.unset = ("deleted_at", "deleted_by", "deleted_by_email", "previous_status")

        before = snapshot(reservation)
        updated = self._write(reservation, mutation, actor, expected_version)
        synced = None
        if (updated.graph_data or {}).get("id"):
            updated, synced = self._sync_create(updated)

        self._audit(AuditAction.restored, actor, before, updated,
                    changes=_status_change(source, target),
                    metadata={"restoredFrom": source.value, "restoredTo": target.value, "graphSynced": synced})
        self._notify(updated, "restored")
        logger.info("Restored reservation %s to %s (version %d)", updated.id, target.value, updated.version)
        return TransitionResult(updated, graph_synced=synced)
