"""
Integration tests for the admin portal.

Tests cover:
- User listing, creation and partial updates
- Admin password reset and own password change
- Avatar uploads for new and existing users
- Login log, audit view and account metrics
"""

import pytest
from datetime import datetime, timezone
from unittest.mock import Mock

from pubportal.models.audit import AuditFilter, LoginLogEntry
from pubportal.models.auth import Role
from pubportal.services.auth_service import AuthService
from tests.factories import make_user


@pytest.fixture
def admin(login_as):
    return login_as(Role.ADMIN, user_id=99, username="root")


def _log(log_id: int, success: bool, **overrides) -> LoginLogEntry:
    data = {
        "log_id": log_id,
        "user_id": 1,
        "username": "somchai",
        "login_at": datetime(2024, 3, 1, 8, 30, tzinfo=timezone.utc),
        "success": success,
        "ip_address": "10.0.0.1",
        "fail_reason": None if success else "invalid_password",
    }
    data.update(overrides)
    return LoginLogEntry(**data)


# ============================================================================
# USERS
# ============================================================================


class TestUsers:
    """Test user management."""

    def test_list_users(self, admin, repos):
        """Test the listing passes the search term and hides hashes."""
        repos.users.list_users.return_value = [make_user(password_hash="$2b$x")]

        response = admin.get("/api/admin/users", params={"q": " som "})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data[0]["username"] == "somchai"
        assert "password_hash" not in data[0]
        repos.users.list_users.assert_awaited_once_with("som", limit=500)

    def test_create_user(self, admin, repos):
        """Test creation hashes the password and upper-cases the role."""
        repos.users.create_user.return_value = make_user(user_id=5, username="nok", role="STAFF")

        response = admin.post("/api/admin/users", json={
            "username": " nok ",
            "password": "secret1",
            "role": "staff",
        })

        assert response.status_code == 201
        assert response.json()["data"]["user_id"] == 5
        kwargs = repos.users.create_user.await_args.kwargs
        assert kwargs["username"] == "nok"
        assert kwargs["role"] == "STAFF"
        assert kwargs["status"] == "ACTIVE"
        assert kwargs["password_hash"].startswith("$2")

    def test_create_without_password(self, admin, repos):
        """Test a password is required."""
        response = admin.post("/api/admin/users", json={"username": "nok"})

        assert response.status_code == 400
        assert response.json() == {"ok": False, "message": "password required"}
        repos.users.create_user.assert_not_awaited()

    def test_create_duplicate(self, admin, repos):
        """Test a taken username surfaces as a 400."""
        repos.users.create_user.side_effect = ValueError("username already exists")

        response = admin.post("/api/admin/users", json={"username": "nok", "password": "secret1"})

        assert response.status_code == 400
        assert response.json()["message"] == "username already exists"

    def test_update_user(self, admin, repos):
        """Test a partial update re-hashes a new password."""
        repos.users.update_user.return_value = make_user(user_id=5, status="SUSPENDED")

        response = admin.patch("/api/admin/users/5", json={"status": "suspended", "password": "newpass"})

        assert response.status_code == 200
        user_id, fields = repos.users.update_user.await_args.args
        assert user_id == 5
        assert fields["status"] == "SUSPENDED"
        assert "password" not in fields
        assert fields["password_hash"].startswith("$2")

    def test_update_nothing(self, admin, repos):
        """Test an empty update is a 400."""
        response = admin.patch("/api/admin/users/5", json={})

        assert response.status_code == 400
        assert response.json()["message"] == "no fields to update"

    def test_update_missing_user(self, admin, repos):
        """Test updating an unknown user is a 404."""
        repos.users.update_user.return_value = None

        response = admin.patch("/api/admin/users/5", json={"first_name": "A"})

        assert response.status_code == 404
        assert response.json()["message"] == "user not found"

    def test_update_bad_id(self, admin):
        """Test a non-numeric user ID is a 400."""
        response = admin.patch("/api/admin/users/abc", json={"first_name": "A"})

        assert response.status_code == 400
        assert response.json()["message"] == "invalid id"


# ============================================================================
# PASSWORDS
# ============================================================================


class TestPasswords:
    """Test admin password operations."""

    def test_reset_password(self, admin, repos):
        """Test a reset stores a new hash without the old password."""
        repos.users.update_password.return_value = True

        response = admin.post("/api/admin/users/reset-password", json={"user_id": 5, "new_password": "abcdef"})

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        user_id, new_hash = repos.users.update_password.await_args.args
        assert user_id == 5
        assert new_hash.startswith("$2")

    @pytest.mark.parametrize("payload", [{"user_id": 5}, {"new_password": "abcdef"}, {}])
    def test_reset_missing_fields(self, admin, payload):
        """Test user_id and new_password are both required."""
        response = admin.post("/api/admin/users/reset-password", json=payload)

        assert response.status_code == 400
        assert response.json()["message"] == "user_id and new_password are required"

    def test_reset_too_short(self, admin):
        """Test the admin minimum of 6 characters."""
        response = admin.post("/api/admin/users/reset-password", json={"user_id": 5, "new_password": "abc"})

        assert response.status_code == 400
        assert response.json()["message"] == "new password must be at least 6 characters"

    def test_reset_unknown_user(self, admin, repos):
        """Test resetting an unknown user is a 404."""
        repos.users.update_password.return_value = False

        response = admin.post("/api/admin/users/reset-password", json={"user_id": 5, "new_password": "abcdef"})

        assert response.status_code == 404

    def test_change_own_password(self, admin, repos):
        """Test the profile change-password checks the current password of the session user."""
        repos.users.get_user_by_id.return_value = make_user(
            user_id=99,
            password_hash=AuthService(Mock(), Mock()).hash_password("oldpass")
        )
        repos.users.update_password.return_value = True

        response = admin.post("/api/admin/profile/change-password", json={
            "current_password": "oldpass",
            "new_password": "newpass",
        })

        assert response.status_code == 200
        assert response.json() == {"ok": True, "message": "password changed"}
        repos.users.get_user_by_id.assert_awaited_once_with(99)


# ============================================================================
# AVATARS
# ============================================================================


class TestAvatars:
    """Test admin avatar uploads."""

    def test_upload_for_new_user(self, admin, repos):
        """Test the pre-create upload returns a public URL only."""
        response = admin.post("/api/admin/users/upload-avatar", files={"file": ("a.jpg", b"jpeg", "image/jpeg")})

        assert response.status_code == 200
        assert response.json()["url"].startswith("http://storage.test/avatars/")
        assert response.json()["url"].endswith(".jpg")
        repos.users.update_user.assert_not_awaited()

    def test_upload_for_existing_user(self, admin, repos):
        """Test the per-user upload uses a users/{id} key and updates the profile."""
        repos.users.get_user_by_id.return_value = make_user(user_id=5)
        repos.users.update_user.return_value = make_user(user_id=5)

        response = admin.post("/api/admin/users/5/avatar", files={"file": ("a.png", b"png", "image/png")})

        assert response.status_code == 200
        body = response.json()
        assert body["publicUrl"].startswith("http://storage.test/avatars/users/5/")
        repos.storage.ensure_bucket.assert_awaited_once_with("avatars")
        repos.users.update_user.assert_awaited_once_with(5, {"profile_image": body["publicUrl"]})

    def test_upload_for_unknown_user(self, admin, repos):
        """Test uploading for an unknown user is a 404 before storing anything."""
        repos.users.get_user_by_id.return_value = None

        response = admin.post("/api/admin/users/5/avatar", files={"file": ("a.png", b"png", "image/png")})

        assert response.status_code == 404
        repos.storage.upload.assert_not_awaited()


# ============================================================================
# LOGS AND METRICS
# ============================================================================


class TestLogs:
    """Test login logs, audit and metrics."""

    def test_login_logs(self, admin, repos):
        """Test the login log listing."""
        repos.login_logs.list_login_logs.return_value = [_log(1, True)]

        response = admin.get("/api/admin/login-logs", params={"q": "som"})

        assert response.status_code == 200
        assert response.json()["data"][0]["log_id"] == 1
        repos.login_logs.list_login_logs.assert_awaited_once_with("som", limit=500)

    def test_audit_actions(self, admin, repos):
        """Test login rows are projected into LOGIN / LOGIN_FAIL entries."""
        repos.login_logs.search_login_logs.return_value = [_log(2, False), _log(1, True)]

        response = admin.get("/api/admin/audit")

        assert response.status_code == 200
        data = response.json()["data"]
        assert [entry["action"] for entry in data] == ["LOGIN_FAIL", "LOGIN"]
        assert data[0]["reason"] == "invalid_password"
        assert data[1]["ip"] == "10.0.0.1"

    def test_audit_filter(self, admin, repos):
        """Test audit query parameters reach the repository."""
        repos.login_logs.search_login_logs.return_value = []

        admin.get("/api/admin/audit", params={
            "q": "som", "from": "2024-03-01", "to": "2024-03-02",
            "result": "fail", "ip": "10.0", "limit": "99999",
        })

        audit_filter = repos.login_logs.search_login_logs.await_args.args[0]
        assert isinstance(audit_filter, AuditFilter)
        assert audit_filter.success is False
        assert audit_filter.limit == 2000
        assert audit_filter.end == datetime(2024, 3, 3, tzinfo=timezone.utc)

    def test_audit_up_to_last_day(self, admin, repos):
        """Test the largest valid date is an open upper bound."""
        repos.login_logs.search_login_logs.return_value = []

        response = admin.get("/api/admin/audit", params={"from": "2024-03-01", "to": "9999-12-31"})

        assert response.status_code == 200
        audit_filter = repos.login_logs.search_login_logs.await_args.args[0]
        assert audit_filter.start == datetime(2024, 3, 1, tzinfo=timezone.utc)
        assert audit_filter.end is None

    def test_audit_inverted_range(self, admin, repos):
        """Test from after to is a 400."""
        response = admin.get("/api/admin/audit", params={"from": "2024-03-05", "to": "2024-03-01"})

        assert response.status_code == 400
        assert response.json()["message"] == "from must not be after to"
        repos.login_logs.search_login_logs.assert_not_awaited()

    def test_audit_bad_date(self, admin):
        """Test a malformed date is a 400."""
        response = admin.get("/api/admin/audit", params={"from": "yesterday"})

        assert response.status_code == 400
        assert response.json()["message"] == "invalid from date"

    def test_user_metrics(self, admin, repos):
        """Test account metrics."""
        metrics = {
            "total_users": 3,
            "active_users": 2,
            "suspended_users": 1,
            "by_role": {"ADMIN": 1, "STAFF": 2, "PROFESSOR": 0},
        }
        repos.users.count_users.return_value = metrics

        response = admin.get("/api/admin/metrics/users")

        assert response.status_code == 200
        assert response.json() == {"ok": True, "data": metrics}
