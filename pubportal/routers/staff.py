"""
Staff router: profile, professors, categories, publications and edit history.

Mounted under ``/api/staff``; the session middleware admits STAFF and ADMIN.
Reviews and reports live in their own routers under the same prefix.
"""

import structlog
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status

from pubportal.config import get_settings
from pubportal.dependencies import (
    get_auth_service,
    get_category_repository,
    get_current_session,
    get_history_repository,
    get_publication_repository,
    get_storage_service,
    get_user_repository,
    require_roles,
)
from pubportal.models.audit import day_bounds
from pubportal.models.auth import ChangePasswordRequest, ProfileUpdateRequest, Role, SessionClaims
from pubportal.models.publication import (
    CategoryCreateRequest,
    CategoryStatus,
    CategoryUpdateRequest,
    PublicationFilter,
)
from pubportal.repositories.category_repo import CategoryRepository
from pubportal.repositories.history_repo import HistoryRepository
from pubportal.repositories.publication_repo import PublicationRepository
from pubportal.repositories.user_repo import UserRepository
from pubportal.routers.me import load_session_user
from pubportal.routers.params import (
    clamp,
    clean_text,
    parse_date,
    parse_id,
    parse_int,
    venue_type,
)
from pubportal.routers.uploads import store_avatar
from pubportal.services.auth_service import AuthService
from pubportal.services.history_service import diff_versions
from pubportal.services.publication_service import load_detail
from pubportal.services.storage_service import StorageService

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/staff",
    tags=["Staff"],
    dependencies=[Depends(require_roles(Role.STAFF, Role.ADMIN))]
)

STAFF_PAGE_SIZE = 20


# ============================================================================
# PROFILE
# ============================================================================


@router.get("/me")
async def staff_me(
    session: SessionClaims = Depends(get_current_session),
    user_repo: UserRepository = Depends(get_user_repository)
):
    user = await load_session_user(session, user_repo)
    return {
        "ok": True,
        "user": {
            "id": user.user_id,
            "username": user.username,
            "name": user.display_name,
            "role": user.role,
            "status": user.status,
            "avatarUrl": user.profile_image,
        },
    }


@router.get("/me/full")
async def staff_me_full(
    session: SessionClaims = Depends(get_current_session),
    user_repo: UserRepository = Depends(get_user_repository)
):
    user = await load_session_user(session, user_repo)
    return {"ok": True, "data": user.public_dict()}


@router.put("/profile")
async def update_profile(
    body: ProfileUpdateRequest,
    session: SessionClaims = Depends(get_current_session),
    user_repo: UserRepository = Depends(get_user_repository)
):
    fields = body.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="no fields to update")

    user = await user_repo.update_user(session.user_id, fields)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="user not found")
    return {"ok": True, "data": user.public_dict()}


@router.post("/profile/avatar")
async def upload_profile_avatar(
    file: Optional[UploadFile] = File(None),
    storage: StorageService = Depends(get_storage_service)
):
    _, url = await store_avatar(storage, file, prefix="profiles")
    return {"ok": True, "publicUrl": url}


@router.post("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    session: SessionClaims = Depends(get_current_session),
    auth_service: AuthService = Depends(get_auth_service)
):
    if not body.current_password or not body.new_password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="current_password and new_password are required"
        )

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


@router.get("/pro")
async def list_professors(
    q: Optional[str] = None,
    user_repo: UserRepository = Depends(get_user_repository)
):
    """Professors ordered by first name."""
    users = await user_repo.list_users_by_role(Role.PROFESSOR.value, q=clean_text(q))
    return {"ok": True, "data": [user.public_dict() for user in users]}


# ============================================================================
# CATEGORIES
# ============================================================================


@router.get("/categories")
async def list_categories(
    q: Optional[str] = None,
    category_repo: CategoryRepository = Depends(get_category_repository)
):
    return {"ok": True, "data": await category_repo.list_categories(q=clean_text(q))}


@router.post("/categories", status_code=status.HTTP_201_CREATED)
async def create_category(
    body: CategoryCreateRequest,
    category_repo: CategoryRepository = Depends(get_category_repository)
):
    name = clean_text(body.name)
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name required")

    try:
        category = await category_repo.create_category(name)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return {"ok": True, "data": category}


@router.put("/categories/{category_id}")
async def update_category(
    category_id: str,
    body: CategoryUpdateRequest,
    category_repo: CategoryRepository = Depends(get_category_repository)
):
    """
    Rename a category and/or change its status.

    **Error Responses:**
    - 400: empty name, unknown status or nothing to update
    - 404: unknown category
    """
    target_id = parse_id(category_id)
    fields = {}

    if body.category_name is not None:
        name = body.category_name.strip()
        if not name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="category_name must not be empty")
        fields["category_name"] = name

    if body.status is not None:
        status_value = body.status.strip().upper()
        if status_value not in [s.value for s in CategoryStatus]:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="status must be ACTIVE or INACTIVE")
        fields["status"] = status_value

    if not fields:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="nothing to update")

    try:
        category = await category_repo.update_category(target_id, fields)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="category not found")
    return {"ok": True, "data": category}


@router.delete("/categories/{category_id}")
async def delete_category(
    category_id: str,
    category_repo: CategoryRepository = Depends(get_category_repository)
):
    target_id = parse_id(category_id)
    if not await category_repo.delete_category(target_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="category not found")
    return {"ok": True}


# ============================================================================
# PUBLICATIONS
# ============================================================================


@router.get("/publications")
async def list_publications(
    request: Request,
    pub_repo: PublicationRepository = Depends(get_publication_repository)
):
    """
    Catalogue listing ordered by year.

    ``counters`` count every status under the same filters.
    """
    params = request.query_params
    pub_filter = PublicationFilter(
        q=clean_text(params.get("q")),
        scope="text",
        venue_type=venue_type(params.get("type")),
        levels=[params["rank"].strip()] if clean_text(params.get("rank")) else [],
        year_from=parse_int(params.get("yearFrom")),
        year_to=parse_int(params.get("yearTo")),
        page=max(1, parse_int(params.get("page"), 1)),
        page_size=clamp(params.get("pageSize"), 1, 50, STAFF_PAGE_SIZE),
    )

    rows, total = await pub_repo.search_publications(pub_filter)
    counters = await pub_repo.count_by_status(pub_filter)
    return {"ok": True, "data": rows, "total": total, "counters": counters}


@router.get("/publications/{pub_id}")
async def get_publication(
    pub_id: str,
    pub_repo: PublicationRepository = Depends(get_publication_repository)
):
    detail = await load_detail(pub_repo, parse_id(pub_id))
    if not detail:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="publication not found")
    return {"ok": True, "data": detail}


# ============================================================================
# EDIT HISTORY
# ============================================================================


@router.get("/history")
async def list_history(
    request: Request,
    history_repo: HistoryRepository = Depends(get_history_repository)
):
    """
    Newest edit-log rows, optionally bounded by ``from`` / ``to`` days and
    filtered on title, field, values and editor name.
    """
    params = request.query_params
    start, end = day_bounds(
        parse_date(params.get("from"), "from"),
        parse_date(params.get("to"), "to")
    )
    rows = await history_repo.list_edit_logs(start=start, end=end, limit=get_settings().history_limit)

    needle = (clean_text(params.get("q")) or "").lower()
    items = []
    for row in rows:
        item = {
            "id": row["edit_id"],
            "when": row["edited_at"],
            "pub_id": row["pub_id"],
            "pub_name": row.get("pub_name"),
            "user": row.get("user_name"),
            "field": row["field_name"],
            "old_value": row.get("old_value"),
            "new_value": row.get("new_value"),
        }
        haystack = " ".join(
            str(item[key] or "") for key in ("pub_name", "field", "old_value", "new_value", "user")
        ).lower()
        if needle and needle not in haystack:
            continue
        items.append(item)

    return {"ok": True, "data": items}


@router.get("/history/diff")
async def history_diff(
    request: Request,
    history_repo: HistoryRepository = Depends(get_history_repository)
):
    """
    Compare two versions of a publication.

    Version N is the replay of the first N edit-log rows; ``from`` and ``to``
    past the end of the log clamp to the full log.
    """
    params = request.query_params
    pub_id = parse_id(params.get("pub_id"), "pub_id")
    from_version = parse_id(params.get("from"), "from")
    to_version = parse_id(params.get("to"), "to")

    edits = await history_repo.edit_logs_for_publication(pub_id)
    rows = diff_versions(edits, from_version, to_version)
    return {"ok": True, "data": {"rows": rows}}
