"""Tests for User endpoints and the permission summary."""
from tests.conftest import create_test_user


class TestUserCRUD:
    """User create / get / update / list."""

    def test_create_user(self, client):
        data = create_test_user(client, email="Alice@Example.org", name="Alice", department="Security")
        assert data["display_name"] == "Alice"
        assert data["email"] == "alice@example.org"
        assert data["role"] == "requester"
        assert data["department"] == "Security"
        assert "user_id" in data

    def test_duplicate_email(self, client):
        create_test_user(client, email="bob@example.org")
        resp = client.post("/api/users/", json={"email": "BOB@example.org", "display_name": "Bob"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "ValidationError"

    def test_get_user(self, client):
        user = create_test_user(client)
        resp = client.get(f"/api/users/{user['user_id']}")
        assert resp.status_code == 200
        assert resp.json()["display_name"] == "Test User"

    def test_get_user_not_found(self, client):
        resp = client.get("/api/users/00000000-0000-0000-0000-000000000000")
        assert resp.status_code == 404

    def test_update_user(self, client):
        user = create_test_user(client)
        resp = client.patch(f"/api/users/{user['user_id']}", json={"role": "approver", "phone": "555-0100"})
        assert resp.status_code == 200
        assert resp.json()["role"] == "approver"
        assert resp.json()["phone"] == "555-0100"

    def test_list_users(self, client):
        create_test_user(client, name="Alice")
        create_test_user(client, name="Bob")
        resp = client.get("/api/users/")
        assert resp.status_code == 200
        names = [u["display_name"] for u in resp.json()]
        assert "Alice" in names
        assert "Bob" in names


class TestPermissions:
    """Effective role and capability flags."""

    def test_requester_flags(self, client):
        user = create_test_user(client)
        resp = client.get(f"/api/users/{user['user_id']}/permissions")
        assert resp.status_code == 200
        data = resp.json()
        assert data["role"] == "requester"
        assert data["canSubmitReservation"] is True
        assert data["canApproveReservations"] is False
        assert data["isAdmin"] is False

    def test_department_fields(self, client):
        user = create_test_user(client, department="Maintenance")
        data = client.get(f"/api/users/{user['user_id']}/permissions").json()
        assert data["canEditDepartmentFields"] is True
        assert "setup_time" in data["departmentEditableFields"]

    def test_domain_admin_without_role(self, client):
        resp = client.post("/api/users/", json={"email": "director@emanuelnyc.org", "display_name": "Director"})
        user = resp.json()
        data = client.get(f"/api/users/{user['user_id']}/permissions").json()
        assert data["role"] == "admin"
        assert data["isAdmin"] is True
