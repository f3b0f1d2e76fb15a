"""
Admin router for user management and login auditing.

Provides REST API endpoints for:
- User management (list, create, update, password reset)
- Profile images for any user
- Login log and audit views
- Account metrics

Mounted under ``/api/admin``; the session middleware admits ADMIN only.
"""

import structlog
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from pubportal.config import get_settings
from pubportal.dependencies import (
    get_auth_service,
    get_current_session,
    get_login_log_repository,
    get_storage_service,
    get_user_repository,
    require_roles,
)
from pubportal.models.audit import AuditEntry, AuditFilter
from pubportal.models.auth import (
    ChangePasswordRequest,
    CreateUserRequest,
    ResetPasswordRequest,
    Role,
    SessionClaims,
    UpdateUserRequest,
)
from pubportal.repositories.login_log_repo import LoginLogRepository
from pubportal.repositories.user_repo import UserRepository
from pubportal.routers.params import clamp, clean_text, parse_date, parse_id
from pubportal.routers.uploads import store_avatar
from pubportal.services.auth_service import AuthService
from pubportal.services.storage_service import StorageService

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/admin",
    tags=["Administration"],
    dependencies=[Depends(require_roles(Role.ADMIN))]
)


# ============================================================================
# USER MANAGEMENT
# ============================================================================


@router.get("/users")
async def list_users(
    q: Optional[str] = None,
    user_repo: UserRepository = Depends(get_user_repository)
):
    """Users ordered by ID, optionally filtered on username, names and email."""
    users = await user_repo.list_users(clean_text(q), limit=get_settings().admin_list_limit)
    return {"ok": True, "data": [user.public_dict() for user in users]}


@router.post("/users", status_code=status.HTTP_201_CREATED)
async def create_user(
    body: CreateUserRequest,
    session: SessionClaims = Depends(get_current_session),
    user_repo: UserRepository = Depends(get_user_repository),
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Create a user.

    **Error Responses:**
    - 400: password missing or username taken
    """
    if not body.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="password required")

    try:
        user = await user_repo.create_user(
            username=body.username.strip(),
            password_hash=auth_service.hash_password(body.password),
            email=body.email,
            first_name=body.first_name,
            last_name=body.last_name,
            phone=body.phone,
            position=body.position,
            role=body.role,
            status=body.status,
            profile_image=body.profile_image,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    logger.info("admin_user_created", admin_id=session.user_id, user_id=user.user_id)
    return {"ok": True, "data": user.public_dict()}


@router.post("/users/reset-password")
async def reset_password(
    body: ResetPasswordRequest,
    session: SessionClaims = Depends(get_current_session),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Set a user's password without the current one."""
    if not body.user_id or not body.new_password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="user_id and new_password are required")

    min_length = get_settings().admin_password_min_length
    if len(body.new_password) < min_length:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"new password must be at least {min_length} characters"
        )

    if not await auth_service.reset_password(body.user_id, body.new_password):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")

    logger.info("admin_password_reset", admin_id=session.user_id, user_id=body.user_id)
    return {"ok": True}


@router.post("/users/upload-avatar")
async def upload_avatar(
    file: Optional[UploadFile] = File(None),
    storage: StorageService = Depends(get_storage_service)
):
    """Upload an image for a user that does not exist yet; the URL goes into the create form."""
    _, url = await store_avatar(storage, file, prefix="")
    return {"ok": True, "url": url}


@router.patch("/users/{user_id}")
async def update_user(
    user_id: str,
    body: UpdateUserRequest,
    session: SessionClaims = Depends(get_current_session),
    user_repo: UserRepository = Depends(get_user_repository),
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Partially update a user. A ``password`` is re-hashed.

    **Error Responses:**
    - 400: invalid id, nothing to update, or username taken
    - 404: unknown user
    """
    target_id = parse_id(user_id)

    fields = body.model_dump(exclude_unset=True)
    password = fields.pop("password", None)
    if password:
        fields["password_hash"] = auth_service.hash_password(password)
    fields = {key: value for key, value in fields.items() if value is not None}

    if not fields:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="no fields to update")

    try:
        user = await user_repo.update_user(target_id, fields)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")

    logger.info("admin_user_updated", admin_id=session.user_id, user_id=target_id)
    return {"ok": True, "data": user.public_dict()}


@router.post("/users/{user_id}/avatar")
async def upload_user_avatar(
    user_id: str,
    file: Optional[UploadFile] = File(None),
    user_repo: UserRepository = Depends(get_user_repository),
    storage: StorageService = Depends(get_storage_service)
):
    """Replace a user's profile image."""
    target_id = parse_id(user_id)
    if not await user_repo.get_user_by_id(target_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")

    _, url = await store_avatar(
        storage,
        file,
        prefix=f"users/{target_id}",
        with_random=False,
        ensure_bucket=True
    )
    user = await user_repo.update_user(target_id, {"profile_image": url})
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")

    return {"ok": True, "publicUrl": url, "data": user.public_dict()}


# ============================================================================
# LOGS AND METRICS
# ============================================================================


@router.get("/login-logs")
async def list_login_logs(
    q: Optional[str] = None,
    login_log_repo: LoginLogRepository = Depends(get_login_log_repository)
):
    entries = await login_log_repo.list_login_logs(clean_text(q), limit=get_settings().admin_list_limit)
    return {"ok": True, "data": [entry.model_dump() for entry in entries]}


@router.get("/audit")
async def audit(
    request: Request,
    login_log_repo: LoginLogRepository = Depends(get_login_log_repository)
):
    """
    Login attempts as LOGIN / LOGIN_FAIL audit entries.

    Query parameters: ``q``, ``from``, ``to`` (YYYY-MM-DD), ``result``
    (success|fail), ``ip`` and ``limit``.
    """
    settings = get_settings()
    params = request.query_params

    result = (params.get("result") or "").strip().lower()
    success = {"success": True, "fail": False}.get(result)

    try:
        audit_filter = AuditFilter(
            q=clean_text(params.get("q")),
            date_from=parse_date(params.get("from"), "from"),
            date_to=parse_date(params.get("to"), "to"),
            success=success,
            ip=clean_text(params.get("ip")),
            limit=clamp(params.get("limit"), 1, settings.audit_max_limit, settings.audit_default_limit),
        )
    except ValidationError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="from must not be after to")

    entries = await login_log_repo.search_login_logs(audit_filter)
    return {
        "ok": True,
        "data": [AuditEntry.from_login_log(entry).model_dump(mode="json") for entry in entries],
    }


@router.get("/metrics/users")
async def user_metrics(user_repo: UserRepository = Depends(get_user_repository)):
    return {"ok": True, "data": await user_repo.count_users()}


# ============================================================================
# OWN PROFILE
# ============================================================================


@router.post("/profile/change-password")
async def change_password(
    body: ChangePasswordRequest,
    session: SessionClaims = Depends(get_current_session),
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Change a password after checking the current one.

    ``user_id`` defaults to the session user.
    """
    if not body.current_password or not body.new_password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="current_password and new_password are required"
        )

    min_length = get_settings().admin_password_min_length
    if len(body.new_password) < min_length:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"new password must be at least {min_length} characters"
        )

    target_id = body.user_id or session.user_id
    try:
        await auth_service.change_password(target_id, body.current_password, body.new_password)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return JSONResponse(content={"ok": True, "message": "password changed"})
