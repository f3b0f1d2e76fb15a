"""
Authentication router: login and logout.

Login accepts a username or an email address, records every attempt in the
login log and sets the session cookie on success.
"""

import structlog
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from pubportal.config import get_settings
from pubportal.dependencies import get_auth_service, get_client_ip, get_user_agent
from pubportal.models.audit import LoginFailReason
from pubportal.models.auth import LoginRequest
from pubportal.rate_limit import limiter
from pubportal.services.auth_service import AuthService

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Authentication"])

_FAILURE_STATUS = {
    LoginFailReason.USER_NOT_FOUND: (status.HTTP_401_UNAUTHORIZED, "invalid username or password"),
    LoginFailReason.INVALID_PASSWORD: (status.HTTP_401_UNAUTHORIZED, "invalid username or password"),
    LoginFailReason.USER_SUSPENDED: (status.HTTP_403_FORBIDDEN, "account suspended"),
}


def set_session_cookie(response: Response, token: str) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.session_max_age,
        path="/",
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
    )


def clear_session_cookie(response: Response) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.session_cookie_name,
        value="",
        max_age=0,
        path="/",
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
    )


@router.post("/login", summary="User Login")
@limiter.limit(get_settings().rate_limit_login)
async def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
    client_ip: str = Depends(get_client_ip),
    user_agent: Optional[str] = Depends(get_user_agent)
):
    """
    Authenticate and set the session cookie.

    **Error Responses:**
    - 400: username or password missing
    - 401: unknown user or wrong password
    - 403: account suspended
    """
    identifier = (body.username or "").strip()
    if not identifier or not body.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="username and password are required"
        )

    logger.info("login_attempt", username=identifier, ip_address=client_ip)

    result = await auth_service.login(identifier, body.password, client_ip, user_agent)

    if not result.ok:
        status_code, message = _FAILURE_STATUS[result.fail_reason]
        logger.warning(
            "login_failed",
            username=identifier,
            ip_address=client_ip,
            reason=result.fail_reason.value
        )
        raise HTTPException(status_code=status_code, detail=message)

    set_session_cookie(response, result.token)
    user = result.user
    logger.info("login_success", user_id=user.user_id, role=user.role, ip_address=client_ip)

    return {
        "ok": True,
        "message": "login success",
        "user": {
            "id": user.user_id,
            "username": user.username,
            "name": user.display_name,
            "role": user.role,
        },
    }


@router.post("/logout", summary="User Logout")
async def logout(response: Response):
    """Clear the session cookie."""
    clear_session_cookie(response)
    return {"ok": True}
