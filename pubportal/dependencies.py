"""
FastAPI dependency injection for database, sessions and services.

Provides injectable dependencies for:
- Repository instances over the shared asyncpg pool
- Service instances (authentication, object storage)
- The current session (from the session cookie)
- Role checks
- Client details (IP address, user agent)

All dependencies use FastAPI's dependency injection system and can be
replaced through ``app.dependency_overrides`` in tests.
"""

import structlog
from functools import lru_cache
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request, status

from pubportal.config import get_settings
from pubportal.db import get_db_pool
from pubportal.models.auth import Role, SessionClaims
from pubportal.rate_limit import client_address
from pubportal.repositories.category_repo import CategoryRepository
from pubportal.repositories.history_repo import HistoryRepository
from pubportal.repositories.login_log_repo import LoginLogRepository
from pubportal.repositories.notification_repo import NotificationRepository
from pubportal.repositories.person_repo import PersonRepository
from pubportal.repositories.publication_repo import PublicationRepository
from pubportal.repositories.user_repo import UserRepository
from pubportal.services.auth_service import AuthService
from pubportal.services.storage_service import StorageService

logger = structlog.get_logger(__name__)


# ============================================================================
# REPOSITORY DEPENDENCIES
# ============================================================================


def get_user_repository() -> UserRepository:
    return UserRepository(get_db_pool())


def get_login_log_repository() -> LoginLogRepository:
    return LoginLogRepository(get_db_pool())


def get_publication_repository() -> PublicationRepository:
    return PublicationRepository(get_db_pool())


def get_history_repository() -> HistoryRepository:
    return HistoryRepository(get_db_pool())


def get_category_repository() -> CategoryRepository:
    return CategoryRepository(get_db_pool())


def get_person_repository() -> PersonRepository:
    return PersonRepository(get_db_pool())


def get_notification_repository() -> NotificationRepository:
    return NotificationRepository(get_db_pool())


# ============================================================================
# SERVICE DEPENDENCIES
# ============================================================================


def get_auth_service(
    user_repo: UserRepository = Depends(get_user_repository),
    login_log_repo: LoginLogRepository = Depends(get_login_log_repository)
) -> AuthService:
    """
    Get authentication service with injected repositories.

    Returns:
        Authentication service
    """
    return AuthService(user_repo, login_log_repo)


@lru_cache()
def get_storage_service() -> StorageService:
    """
    Get object storage service instance (cached).

    The aioboto3 session is reused; clients are opened per operation.
    """
    return StorageService.from_settings(get_settings())


# ============================================================================
# SESSION DEPENDENCIES
# ============================================================================


async def get_optional_session(request: Request) -> Optional[SessionClaims]:
    """Session claims decoded by the session middleware, or None."""
    return getattr(request.state, "session", None)


async def get_current_session(
    session: Optional[SessionClaims] = Depends(get_optional_session)
) -> SessionClaims:
    """
    Get the current session.

    Raises:
        HTTPException: 401 when there is no valid session cookie

    Example:
        @router.get("/me")
        async def me(session: SessionClaims = Depends(get_current_session)):
            return {"user_id": session.user_id}
    """
    if session is None:
        logger.warning("session_required")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="unauthorized"
        )
    return session


def require_roles(*roles: Role) -> Callable:
    """
    Dependency factory requiring one of the given roles.

    Example:
        @router.get("/users", dependencies=[Depends(require_roles(Role.ADMIN))])
    """
    async def checker(session: SessionClaims = Depends(get_current_session)) -> SessionClaims:
        if not session.has_any_role(*roles):
            logger.warning(
                "access_denied_role_required",
                user_id=session.user_id,
                role=session.role.value,
                required=[role.value for role in roles]
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="forbidden"
            )
        return session

    return checker


# ============================================================================
# UTILITY DEPENDENCIES
# ============================================================================


async def get_client_ip(request: Request) -> str:
    """
    Get client IP address from request.

    Checks X-Forwarded-For header first (for proxies),
    then falls back to client host.
    """
    return client_address(request)


async def get_user_agent(request: Request) -> Optional[str]:
    return request.headers.get("User-Agent")
