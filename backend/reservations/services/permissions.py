"""Role, ownership and department authorization.

Role hierarchy (lowest to highest):
- viewer:    view calendar only
- requester: viewer + submit/manage own reservation requests
- approver:  requester + publish/reject any reservation, edit/delete published events
- admin:     approver + restore any deleted/cancelled record

All guards go through ``authorize(actor, reservation, action)`` so ownership
and department logic is derived in one place.
"""
from dataclasses import dataclass
from typing import Any, Optional

from reservations.config import settings
from reservations.models.reservation import Reservation
from reservations.models.user import Role, User

ROLE_HIERARCHY = {
    Role.viewer: 0,
    Role.requester: 1,
    Role.approver: 2,
    Role.admin: 3,
}

# Fields a department may edit on any reservation, regardless of role
DEPARTMENT_EDITABLE_FIELDS = {
    "security": ["door_open_time", "door_close_time", "door_notes"],
    "maintenance": ["setup_time", "teardown_time", "setup_notes", "event_notes"],
}


class Action:
    CREATE_DRAFT = "create_draft"
    UPDATE_DRAFT = "update_draft"
    SUBMIT_DRAFT = "submit_draft"
    EDIT = "edit"
    REVIEW = "review"  # publish / reject / approver save / edit-request decisions
    RESUBMIT = "resubmit"
    REQUEST_EDIT = "request_edit"
    CANCEL_EDIT_REQUEST = "cancel_edit_request"
    CANCEL = "cancel"
    DELETE = "delete"
    ADMIN_RESTORE = "admin_restore"
    OWNER_RESTORE = "owner_restore"
    VIEW_ALL = "view_all"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.allowed


def effective_role(user: Optional[User]) -> Role:
    """Explicit role wins; otherwise the admin e-mail domain; otherwise viewer."""
    if user is None:
        return Role.viewer
    if user.role is not None:
        return Role(user.role)
    if user.email and user.email.lower().endswith(settings.ADMIN_DOMAIN.lower()):
        return Role.admin
    return Role.viewer


def has_role(user: Optional[User], required: Role) -> bool:
    return ROLE_HIERARCHY[effective_role(user)] >= ROLE_HIERARCHY[required]


def is_owner(user: Optional[User], reservation: Reservation) -> bool:
    if user is None:
        return False
    if reservation.user_id == user.user_id:
        return True
    requester_email = reservation.requester_email
    return bool(requester_email and user.email and requester_email.lower() == user.email.lower())


def same_department(user: Optional[User], reservation: Reservation) -> bool:
    """Case-insensitive match; a reservation without a department matches nobody."""
    if user is None or not user.department:
        return False
    department = reservation.requester_department
    if not department:
        return False
    return department.strip().lower() == user.department.strip().lower()


def department_editable_fields(user: Optional[User]) -> list[str]:
    if user is None or not user.department:
        return []
    return DEPARTMENT_EDITABLE_FIELDS.get(user.department.strip().lower(), [])


def can_edit_field(user: Optional[User], field: str) -> bool:
    if has_role(user, Role.approver):
        return True
    return field in department_editable_fields(user)


def authorize(user: Optional[User], reservation: Optional[Reservation], action: str) -> AccessDecision:
    """Single allow/deny predicate for every lifecycle guard."""
    approver = has_role(user, Role.approver)

    if action == Action.CREATE_DRAFT:
        if has_role(user, Role.requester):
            return AccessDecision(True)
        return AccessDecision(False, "Permission denied. Requester role required.")

    if action == Action.VIEW_ALL or action == Action.REVIEW or action == Action.DELETE:
        if approver:
            return AccessDecision(True)
        return AccessDecision(False, "Permission denied. Approver role required.")

    if action == Action.ADMIN_RESTORE:
        if has_role(user, Role.admin):
            return AccessDecision(True)
        return AccessDecision(False, "Permission denied. Admin role required.")

    owner = reservation is not None and is_owner(user, reservation)

    if action in (Action.UPDATE_DRAFT, Action.SUBMIT_DRAFT):
        if owner or approver:
            return AccessDecision(True)
        return AccessDecision(False, "Permission denied. Only the owner or an approver can modify this draft.")

    if action == Action.EDIT:
        if owner or approver or (reservation is not None and same_department(user, reservation)):
            return AccessDecision(True)
        return AccessDecision(False, "Permission denied. You can only edit your own or your department's reservations.")

    if action == Action.CANCEL_EDIT_REQUEST:
        if owner:
            return AccessDecision(True)
        return AccessDecision(False, "Permission denied. Only the requester can cancel this edit request.")

    if action in (Action.RESUBMIT, Action.REQUEST_EDIT, Action.CANCEL, Action.OWNER_RESTORE):
        if owner:
            return AccessDecision(True)
        return AccessDecision(False, "Permission denied. You can only act on your own reservations.")

    return AccessDecision(False, f"Unknown action: {action}")


def get_permissions(user: Optional[User]) -> dict[str, Any]:
    """Flattened permission flags for the client."""
    role = effective_role(user)
    level = ROLE_HIERARCHY[role]
    editable = department_editable_fields(user)
    return {
        "role": role.value,
        "department": user.department if user else None,
        "departmentEditableFields": editable,
        "canEditDepartmentFields": bool(editable),
        "canViewCalendar": True,
        "canSubmitReservation": level >= ROLE_HIERARCHY[Role.requester],
        "canCreateEvents": level >= ROLE_HIERARCHY[Role.approver],
        "canEditEvents": level >= ROLE_HIERARCHY[Role.approver],
        "canDeleteEvents": level >= ROLE_HIERARCHY[Role.approver],
        "canApproveReservations": level >= ROLE_HIERARCHY[Role.approver],
        "canViewAllReservations": level >= ROLE_HIERARCHY[Role.approver],
        "isAdmin": role == Role.admin,
    }
