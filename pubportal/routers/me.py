"""
Current-user router (``/api/me``).

Profile reads and self-service updates for whoever holds the session,
regardless of role.
"""

import structlog
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status

from pubportal.config import get_settings
from pubportal.dependencies import (
    get_auth_service,
    get_current_session,
    get_storage_service,
    get_user_repository,
)
from pubportal.models.auth import ChangePasswordRequest, ProfileUpdateRequest, SessionClaims, UserRecord
from pubportal.repositories.user_repo import UserRepository
from pubportal.routers.uploads import store_avatar
from pubportal.services.auth_service import AuthService
from pubportal.services.storage_service import StorageService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/me", tags=["Current User"])

SELF_EDITABLE_FIELDS = ("first_name", "last_name", "username", "email", "phone", "position")


async def load_session_user(session: SessionClaims, user_repo: UserRepository) -> UserRecord:
    user = await user_repo.get_user_by_id(session.user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")
    return user


def profile_summary(user: UserRecord) -> dict:
    return {
        "id": user.user_id,
        "username": user.username,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "name": user.display_name,
        "role": user.role,
        "status": user.status,
        "profile_image": user.profile_image,
    }


@router.get("")
async def get_me(
    session: SessionClaims = Depends(get_current_session),
    user_repo: UserRepository = Depends(get_user_repository)
):
    user = await load_session_user(session, user_repo)
    return {"ok": True, "data": profile_summary(user)}


@router.get("/detail")
async def get_me_detail(
    session: SessionClaims = Depends(get_current_session),
    user_repo: UserRepository = Depends(get_user_repository)
):
    user = await load_session_user(session, user_repo)
    return {"ok": True, "data": user.public_dict()}


@router.patch("/update")
async def update_me(
    body: ProfileUpdateRequest,
    session: SessionClaims = Depends(get_current_session),
    user_repo: UserRepository = Depends(get_user_repository)
):
    """Update own profile fields; other keys in the body are ignored."""
    fields = {
        key: value
        for key, value in body.model_dump(exclude_unset=True).items()
        if key in SELF_EDITABLE_FIELDS
    }
    if not fields:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="no fields to update")

    user = await user_repo.update_user(session.user_id, fields)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")

    return {"ok": True, "data": user.public_dict()}


@router.post("/avatar")
async def upload_my_avatar(
    file: Optional[UploadFile] = File(None),
    session: SessionClaims = Depends(get_current_session),
    user_repo: UserRepository = Depends(get_user_repository),
    storage: StorageService = Depends(get_storage_service)
):
    """Store a new profile image and point the profile at it."""
    _, url = await store_avatar(storage, file, prefix=str(session.user_id))

    user = await user_repo.update_user(session.user_id, {"profile_image": url})
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")

    logger.info("avatar_updated", user_id=session.user_id)
    return {"ok": True, "url": url}


@router.post("/change-password")
async def change_my_password(
    body: ChangePasswordRequest,
    session: SessionClaims = Depends(get_current_session),
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Change own password.

    **Error Responses:**
    - 400: missing fields, confirmation mismatch, too short, or wrong current password
    - 404: user no longer exists
    """
    if not body.current_password or not body.new_password or not body.confirm_password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="all password fields are required")

    if body.new_password != body.confirm_password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="passwords do not match")

    min_length = get_settings().password_min_length
    if len(body.new_password) < min_length:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"new password must be at least {min_length} characters"
        )

    try:
        await auth_service.change_password(session.user_id, body.current_password, body.new_password)
    except LookupError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except PermissionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return {"ok": True}
