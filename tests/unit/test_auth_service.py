"""
Unit tests for session tokens and the authentication service.

Tests cover:
- Session token creation and claims
- Rejection of expired, forged and malformed tokens
- Login outcomes and login-log recording
- Password change and admin reset
"""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

from jose import jwt

from pubportal.config import get_settings
from pubportal.models.audit import LoginFailReason
from pubportal.models.auth import Role
from pubportal.services.auth_service import AuthService, create_session_token, decode_session_token
from tests.factories import make_user


# ============================================================================
# SESSION TOKENS
# ============================================================================


class TestSessionTokens:
    """Test session token signing and verification."""

    def test_round_trip_claims(self):
        """Test a fresh token decodes to the user's claims."""
        token = create_session_token(make_user(user_id=42, username="nok", role="STAFF"))
        claims = decode_session_token(token)

        assert claims.user_id == 42
        assert claims.username == "nok"
        assert claims.role == Role.STAFF

    def test_expiry_follows_settings(self):
        """Test exp is session_expire_days after iat."""
        settings = get_settings()
        token = create_session_token(make_user())
        claims = decode_session_token(token)

        assert claims.exp - claims.iat == settings.session_expire_days * 86400

    def test_missing_token(self):
        """Test None and empty tokens are no session."""
        assert decode_session_token(None) is None
        assert decode_session_token("") is None

    def test_expired_token_rejected(self):
        """Test an expired token is no session."""
        settings = get_settings()
        past = datetime.now(timezone.utc) - timedelta(days=1)
        token = jwt.encode(
            {"user_id": 1, "username": "a", "role": "ADMIN", "exp": int(past.timestamp())},
            settings.session_secret_key,
            algorithm=settings.session_algorithm,
        )
        assert decode_session_token(token) is None

    def test_forged_signature_rejected(self):
        """Test a token signed with another key is no session."""
        token = jwt.encode({"user_id": 1, "username": "a", "role": "ADMIN"}, "x" * 40, algorithm="HS256")
        assert decode_session_token(token) is None

    def test_unknown_role_rejected(self):
        """Test a correctly signed token with an unknown role is no session."""
        settings = get_settings()
        token = jwt.encode(
            {"user_id": 1, "username": "a", "role": "ROOT"},
            settings.session_secret_key,
            algorithm=settings.session_algorithm,
        )
        assert decode_session_token(token) is None

    def test_garbage_rejected(self):
        """Test a non-JWT string is no session."""
        assert decode_session_token("not-a-token") is None


# ============================================================================
# AUTH SERVICE
# ============================================================================


class TestAuthService:
    """Test login and password flows against mocked repositories."""

    @pytest.fixture
    def user_repo(self):
        return Mock(get_user_by_login=AsyncMock(), get_user_by_id=AsyncMock(), update_password=AsyncMock())

    @pytest.fixture
    def login_log_repo(self):
        return Mock(create_login_log=AsyncMock())

    @pytest.fixture
    def service(self, user_repo, login_log_repo):
        return AuthService(user_repo, login_log_repo)

    def test_hash_and_verify(self, service):
        """Test bcrypt hashes verify and differ from the input."""
        hashed = service.hash_password("secret-pass")
        assert hashed != "secret-pass"
        assert service.verify_password("secret-pass", hashed)
        assert not service.verify_password("wrong", hashed)

    def test_verify_unusable_hash(self, service):
        """Test a missing or foreign hash never verifies."""
        assert not service.verify_password("x", None)
        assert not service.verify_password("x", "plain-text-not-a-hash")

    @pytest.mark.asyncio
    async def test_login_success_records_attempt(self, service, user_repo, login_log_repo):
        """Test a good login issues a token and logs success."""
        user_repo.get_user_by_login.return_value = make_user(password_hash=service.hash_password("pw123456"))

        result = await service.login("somchai", "pw123456", ip_address="10.0.0.1", user_agent="pytest")

        assert result.ok
        assert decode_session_token(result.token).user_id == 1
        login_log_repo.create_login_log.assert_awaited_once_with(
            user_id=1,
            username="somchai",
            success=True,
            ip_address="10.0.0.1",
            user_agent="pytest",
            fail_reason=None,
        )

    @pytest.mark.asyncio
    async def test_unknown_user(self, service, user_repo, login_log_repo):
        """Test an unknown user fails and is logged without user_id."""
        user_repo.get_user_by_login.return_value = None

        result = await service.login("ghost", "pw")

        assert not result.ok
        assert result.fail_reason == LoginFailReason.USER_NOT_FOUND
        kwargs = login_log_repo.create_login_log.await_args.kwargs
        assert kwargs["user_id"] is None
        assert kwargs["success"] is False
        assert kwargs["fail_reason"] == "user_not_found"

    @pytest.mark.asyncio
    async def test_suspended_user(self, service, user_repo):
        """Test a suspended account fails before the password check."""
        user_repo.get_user_by_login.return_value = make_user(status="SUSPENDED", password_hash=None)

        result = await service.login("somchai", "anything")

        assert result.fail_reason == LoginFailReason.USER_SUSPENDED
        assert result.token is None

    @pytest.mark.asyncio
    async def test_wrong_password(self, service, user_repo):
        """Test a wrong password fails with invalid_password."""
        user_repo.get_user_by_login.return_value = make_user(password_hash=service.hash_password("right-one"))

        result = await service.login("somchai", "wrong-one")

        assert result.fail_reason == LoginFailReason.INVALID_PASSWORD

    @pytest.mark.asyncio
    async def test_change_password(self, service, user_repo):
        """Test a change with the right current password stores a new hash."""
        user_repo.get_user_by_id.return_value = make_user(password_hash=service.hash_password("old-password"))

        await service.change_password(1, "old-password", "new-password")

        user_id, new_hash = user_repo.update_password.await_args.args
        assert user_id == 1
        assert service.verify_password("new-password", new_hash)

    @pytest.mark.asyncio
    async def test_change_password_wrong_current(self, service, user_repo):
        """Test a wrong current password raises PermissionError."""
        user_repo.get_user_by_id.return_value = make_user(password_hash=service.hash_password("old-password"))

        with pytest.raises(PermissionError):
            await service.change_password(1, "nope", "new-password")
        user_repo.update_password.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_change_password_missing_user(self, service, user_repo):
        """Test a vanished user raises LookupError."""
        user_repo.get_user_by_id.return_value = None

        with pytest.raises(LookupError):
            await service.change_password(99, "a", "b")

    @pytest.mark.asyncio
    async def test_reset_password(self, service, user_repo):
        """Test an admin reset reports whether the user exists."""
        user_repo.update_password.return_value = False
        assert await service.reset_password(99, "whatever") is False
