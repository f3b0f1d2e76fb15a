"""
Session cookie middleware.

Provides:
- Session token extraction from the session cookie
- Token verification (signature and expiry)
- Request context enrichment with the session claims
- Path-prefix portal gating by role
"""

import structlog
from typing import Callable, Dict, Optional, Tuple

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from pubportal.config import get_settings
from pubportal.errors import error_response
from pubportal.models.auth import Role, SessionClaims
from pubportal.services.auth_service import decode_session_token

logger = structlog.get_logger(__name__)


# ============================================================================
# PORTAL GATING
# ============================================================================

def portal_roles(api_prefix: str = "/api") -> Dict[str, Tuple[Role, ...]]:
    """Path prefix -> roles allowed under it."""
    return {
        f"{api_prefix}/admin": (Role.ADMIN,),
        f"{api_prefix}/staff": (Role.STAFF, Role.ADMIN),
        f"{api_prefix}/professor": (Role.PROFESSOR, Role.ADMIN),
    }


PORTAL_ROLES = portal_roles()


def required_roles(path: str, rules: Optional[Dict[str, Tuple[Role, ...]]] = None) -> Optional[Tuple[Role, ...]]:
    """
    Roles required for a path.

    Returns:
        Allowed roles, or None when the path is not gated
    """
    for prefix, roles in (rules or PORTAL_ROLES).items():
        if path == prefix or path.startswith(prefix + "/"):
            return roles
    return None


def can_access(path: str, role: Optional[Role], rules: Optional[Dict[str, Tuple[Role, ...]]] = None) -> bool:
    """Whether a session with ``role`` may reach ``path``."""
    roles = required_roles(path, rules)
    if roles is None:
        return True
    return role is not None and role in roles


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Decode the session cookie into ``request.state.session`` and gate the
    portal prefixes.

    No or invalid session on a gated path -> 401; a role outside the
    prefix's roles -> 403.
    """

    def __init__(self, app, cookie_name: Optional[str] = None, api_prefix: Optional[str] = None):
        """
        Initialize session middleware.

        Args:
            app: ASGI application
            cookie_name: Session cookie name (defaults to settings)
            api_prefix: API prefix the portal rules hang off (defaults to settings)
        """
        super().__init__(app)
        settings = get_settings()
        self.cookie_name = cookie_name or settings.session_cookie_name
        self.rules = portal_roles(api_prefix or settings.api_prefix)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        token = request.cookies.get(self.cookie_name)
        session: Optional[SessionClaims] = decode_session_token(token)
        request.state.session = session

        path = request.url.path
        roles = required_roles(path, self.rules)
        if roles is not None and request.method != "OPTIONS":
            if session is None:
                logger.warning(
                    "session_missing",
                    path=path,
                    method=request.method,
                    has_cookie=token is not None
                )
                return error_response(status.HTTP_401_UNAUTHORIZED, "unauthorized")

            if session.role not in roles:
                logger.warning(
                    "portal_access_denied",
                    path=path,
                    user_id=session.user_id,
                    role=session.role.value
                )
                return error_response(status.HTTP_403_FORBIDDEN, "forbidden")

        return await call_next(request)
