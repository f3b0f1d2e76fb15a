"""
Authentication service for login and session token management.

Provides:
- Password hashing and verification (passlib + bcrypt)
- Session token creation and validation (python-jose, HS256)
- Login with attempt recording
- Password changes
"""

import structlog
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from passlib.context import CryptContext
from jose import JWTError, jwt
from pydantic import ValidationError

from pubportal.config import Settings, get_settings
from pubportal.models.audit import LoginFailReason
from pubportal.models.auth import SessionClaims, UserRecord
from pubportal.repositories.login_log_repo import LoginLogRepository
from pubportal.repositories.user_repo import UserRepository

logger = structlog.get_logger(__name__)


# ============================================================================
# Session tokens
# ============================================================================


def create_session_token(user: UserRecord, settings: Optional[Settings] = None) -> str:
    """
    Sign a session token for a user.

    Args:
        user: Authenticated user
        settings: Settings to use (defaults to the cached settings)

    Returns:
        Encoded JWT carrying user_id, username and role
    """
    settings = settings or get_settings()
    now = datetime.now(timezone.utc)
    expire = now + timedelta(days=settings.session_expire_days)

    payload = {
        "user_id": user.user_id,
        "username": user.username,
        "role": user.role,
        "exp": int(expire.timestamp()),
        "iat": int(now.timestamp()),
    }

    return jwt.encode(payload, settings.session_secret_key, algorithm=settings.session_algorithm)


def decode_session_token(token: Optional[str], settings: Optional[Settings] = None) -> Optional[SessionClaims]:
    """
    Verify a session token's signature and expiry.

    Args:
        token: Encoded token (may be None or empty)
        settings: Settings to use (defaults to the cached settings)

    Returns:
        Claims, or None if the token is missing, invalid, expired or malformed
    """
    if not token:
        return None

    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, settings.session_secret_key, algorithms=[settings.session_algorithm])
        return SessionClaims(**payload)
    except JWTError as e:
        logger.debug("session_token_rejected", error=str(e))
        return None
    except (ValidationError, TypeError) as e:
        logger.warning("session_token_malformed", error=str(e))
        return None


# ============================================================================
# Service
# ============================================================================


@dataclass
class LoginResult:
    """Outcome of a login attempt."""
    user: Optional[UserRecord] = None
    token: Optional[str] = None
    fail_reason: Optional[LoginFailReason] = None

    @property
    def ok(self) -> bool:
        return self.fail_reason is None and self.token is not None


class AuthService:
    """Service for authentication operations."""

    def __init__(self, user_repo: UserRepository, login_log_repo: LoginLogRepository):
        """
        Initialize auth service.

        Args:
            user_repo: User repository
            login_log_repo: Login attempt repository
        """
        self.user_repo = user_repo
        self.login_log_repo = login_log_repo
        self.settings = get_settings()

        self.pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=self.settings.password_bcrypt_rounds
        )

    def hash_password(self, password: str) -> str:
        """
        Hash a password using bcrypt.

        Args:
            password: Plain text password

        Returns:
            Hashed password
        """
        hashed = self.pwd_context.hash(password)
        logger.debug("password_hashed")
        return hashed

    def verify_password(self, plain_password: str, hashed_password: Optional[str]) -> bool:
        """
        Verify a password against its hash.

        Returns:
            True if password matches; False on mismatch or an unusable hash
        """
        if not hashed_password:
            return False
        try:
            return self.pwd_context.verify(plain_password, hashed_password)
        except ValueError as e:
            logger.warning("password_hash_unrecognized", error=str(e))
            return False

    def create_session_token(self, user: UserRecord) -> str:
        token = create_session_token(user, self.settings)
        logger.info(
            "session_token_created",
            user_id=user.user_id,
            role=user.role,
            expires_in_days=self.settings.session_expire_days
        )
        return token

    async def authenticate(self, identifier: str, password: str) -> LoginResult:
        """
        Check credentials.

        Args:
            identifier: Username or email
            password: Plain text password

        Returns:
            LoginResult with the user on success, or the failure reason
        """
        user = await self.user_repo.get_user_by_login(identifier)

        if not user:
            logger.warning("authentication_failed_user_not_found", identifier=identifier)
            return LoginResult(fail_reason=LoginFailReason.USER_NOT_FOUND)

        if not user.is_active:
            logger.warning("authentication_failed_user_suspended", user_id=user.user_id)
            return LoginResult(user=user, fail_reason=LoginFailReason.USER_SUSPENDED)

        if not self.verify_password(password, user.password_hash):
            logger.warning("authentication_failed_invalid_password", user_id=user.user_id)
            return LoginResult(user=user, fail_reason=LoginFailReason.INVALID_PASSWORD)

        logger.info("user_authenticated", user_id=user.user_id, username=user.username)
        return LoginResult(user=user)

    async def login(
        self,
        identifier: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> LoginResult:
        """
        Authenticate, record the attempt and issue a session token.

        Every attempt writes one login_log row, successful or not.
        """
        result = await self.authenticate(identifier, password)

        await self.login_log_repo.create_login_log(
            user_id=result.user.user_id if result.user else None,
            username=identifier,
            success=result.fail_reason is None,
            ip_address=ip_address,
            user_agent=user_agent,
            fail_reason=result.fail_reason.value if result.fail_reason else None
        )

        if result.fail_reason is None:
            result.token = self.create_session_token(result.user)
        return result

    async def change_password(self, user_id: int, current_password: str, new_password: str) -> None:
        """
        Change a password after checking the current one.

        Raises:
            LookupError: If the user does not exist
            PermissionError: If the current password is wrong
        """
        user = await self.user_repo.get_user_by_id(user_id)
        if not user:
            raise LookupError("user not found")

        if not self.verify_password(current_password, user.password_hash):
            logger.warning("password_change_rejected", user_id=user_id)
            raise PermissionError("current password is incorrect")

        await self.user_repo.update_password(user_id, self.hash_password(new_password))
        logger.info("password_changed", user_id=user_id)

    async def reset_password(self, user_id: int, new_password: str) -> bool:
        """
        Set a password without checking the old one (admin reset).

        Returns:
            True if the user exists
        """
        updated = await self.user_repo.update_password(user_id, self.hash_password(new_password))
        if updated:
            logger.info("password_reset", user_id=user_id)
        return updated
