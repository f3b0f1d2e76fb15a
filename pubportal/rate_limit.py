"""
Rate limiting with slowapi.

Keys requests by client address, honouring the first X-Forwarded-For hop.
"""

from slowapi import Limiter
from starlette.requests import Request

from pubportal.config import get_settings


def client_address(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


_settings = get_settings()

limiter = Limiter(
    key_func=client_address,
    enabled=_settings.rate_limit_enabled,
    storage_uri=_settings.rate_limit_storage_url or "memory://",
)
