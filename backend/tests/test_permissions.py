"""Tests for the single authorization predicate."""
from reservations.models.user import Role
from reservations.services.permissions import (
    Action,
    authorize,
    can_edit_field,
    effective_role,
    get_permissions,
    same_department,
)
from tests.conftest import insert_reservation, make_user


class TestEffectiveRole:
    """Explicit role, then admin domain, then viewer."""

    def test_explicit_role(self, db):
        assert effective_role(make_user(db, role=Role.approver)) == Role.approver

    def test_admin_domain_without_role(self, db):
        user = make_user(db, email="rabbi@EmanuelNYC.org", role=None)
        assert effective_role(user) == Role.admin

    def test_default_is_viewer(self, db):
        assert effective_role(make_user(db, role=None)) == Role.viewer

    def test_no_user_is_viewer(self):
        assert effective_role(None) == Role.viewer


class TestAuthorize:
    """Role, ownership and department guards."""

    def test_viewer_cannot_create(self, db):
        decision = authorize(make_user(db, role=Role.viewer), None, Action.CREATE_DRAFT)
        assert not decision
        assert "Requester" in decision.reason

    def test_requester_can_create(self, db):
        assert authorize(make_user(db), None, Action.CREATE_DRAFT)

    def test_review_requires_approver(self, db):
        owner = make_user(db)
        reservation = insert_reservation(db, owner)
        assert not authorize(owner, reservation, Action.REVIEW)
        assert authorize(make_user(db, role=Role.approver), reservation, Action.REVIEW)
        assert authorize(make_user(db, role=Role.admin), reservation, Action.REVIEW)

    def test_admin_restore_requires_admin(self, db):
        owner = make_user(db)
        reservation = insert_reservation(db, owner)
        decision = authorize(make_user(db, role=Role.approver), reservation, Action.ADMIN_RESTORE)
        assert not decision
        assert "Admin" in decision.reason

    def test_owner_matched_by_requester_email(self, db):
        owner = make_user(db, email="owner@example.org")
        reservation = insert_reservation(db, owner)
        same_person = make_user(db, email="other-account@example.org")
        reservation.room_reservation_data = {"requesterEmail": "OTHER-ACCOUNT@example.org"}
        db.commit()
        assert authorize(same_person, reservation, Action.RESUBMIT)

    def test_non_owner_cannot_resubmit(self, db):
        owner = make_user(db)
        reservation = insert_reservation(db, owner)
        assert not authorize(make_user(db), reservation, Action.RESUBMIT)

    def test_same_department_may_edit(self, db):
        owner = make_user(db, department="Security")
        reservation = insert_reservation(db, owner)
        colleague = make_user(db, department="security")
        outsider = make_user(db, department="Maintenance")
        assert authorize(colleague, reservation, Action.EDIT)
        assert not authorize(outsider, reservation, Action.EDIT)

    def test_reservation_without_department_matches_nobody(self, db):
        owner = make_user(db)
        reservation = insert_reservation(db, owner)
        assert not same_department(make_user(db, department="Security"), reservation)

    def test_only_requester_cancels_edit_request(self, db):
        owner = make_user(db)
        reservation = insert_reservation(db, owner)
        decision = authorize(make_user(db, role=Role.admin), reservation, Action.CANCEL_EDIT_REQUEST)
        assert not decision
        assert "Only the requester" in decision.reason
        assert authorize(owner, reservation, Action.CANCEL_EDIT_REQUEST)


class TestDepartmentFields:
    """Department staff may edit their department's fields."""

    def test_security_fields(self, db):
        security = make_user(db, department="Security")
        assert can_edit_field(security, "door_open_time")
        assert not can_edit_field(security, "setup_time")

    def test_approver_edits_everything(self, db):
        assert can_edit_field(make_user(db, role=Role.approver), "event_title")

    def test_permissions_payload(self, db):
        flags = get_permissions(make_user(db, department="Maintenance"))
        assert flags["role"] == "requester"
        assert flags["canSubmitReservation"] is True
        assert flags["canApproveReservations"] is False
        assert flags["canEditDepartmentFields"] is True
        assert "setup_time" in flags["departmentEditableFields"]
