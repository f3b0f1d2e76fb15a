"""FastAPI middleware components.

Session decoding with portal gating, request logging with correlation
IDs and metrics, and security headers.
"""

from pubportal.middleware.session import SessionMiddleware, can_access, PORTAL_ROLES
from pubportal.middleware.request_logging import RequestLoggingMiddleware, SecurityHeadersMiddleware

__all__ = [
    "SessionMiddleware",
    "can_access",
    "PORTAL_ROLES",
    "RequestLoggingMiddleware",
    "SecurityHeadersMiddleware",
]
