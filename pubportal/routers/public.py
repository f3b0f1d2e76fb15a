"""
Public endpoints (no session).

Only published publications are visible here; anything else answers 404.
"""

import re
import structlog
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from pubportal.dependencies import (
    get_person_repository,
    get_publication_repository,
    get_user_repository,
)
from pubportal.models.auth import Role, UserRecord
from pubportal.models.publication import PUBLIC_STATUSES, PublicationFilter
from pubportal.repositories.person_repo import PersonRepository
from pubportal.repositories.publication_repo import PublicationRepository
from pubportal.repositories.user_repo import UserRepository
from pubportal.routers.params import (
    clamp,
    clean_text,
    multi_values,
    parse_flag,
    parse_id,
    parse_int,
    parse_tri_bool,
    venue_type,
)
from pubportal.services.publication_service import list_row, load_detail

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Public"])

PEOPLE_SEARCH_LIMIT = 10
PUBLIC_PAGE_SIZE = 10

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def admin_contact(user: UserRecord) -> Dict[str, Any]:
    """Contact card of an admin account."""
    name = " ".join(p for p in (user.first_name, user.last_name) if p).strip()
    email = user.email
    if not email and _EMAIL_RE.match(user.username or ""):
        email = user.username
    return {
        "id": user.user_id,
        "name": name or user.username or f"#{user.user_id}",
        "email": email,
        "phone": user.phone,
        "position": user.position,
        "avatar": user.profile_image,
    }


async def _published_detail(pub_repo: PublicationRepository, pub_id: str) -> Dict[str, Any]:
    detail = await load_detail(pub_repo, parse_id(pub_id), statuses=PUBLIC_STATUSES)
    if not detail:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="publication not found")
    return detail


# ============================================================================
# PEOPLE AND CONTACTS
# ============================================================================


@router.get("/people/search")
async def people_search(
    q: Optional[str] = None,
    person_repo: PersonRepository = Depends(get_person_repository)
):
    term = clean_text(q)
    if not term:
        return {"ok": True, "data": []}

    rows = await person_repo.search_people(term, limit=PEOPLE_SEARCH_LIMIT)
    return {
        "ok": True,
        "data": [{"person_id": row["person_id"], "full_name": row["full_name"]} for row in rows],
    }


@router.get("/public/admin-contacts")
async def admin_contacts(user_repo: UserRepository = Depends(get_user_repository)):
    """Active administrators, ordered by first name."""
    admins = await user_repo.list_users_by_role(Role.ADMIN.value, active_only=True)
    return {"ok": True, "data": [admin_contact(user) for user in admins]}


# ============================================================================
# PUBLISHED PUBLICATIONS
# ============================================================================


@router.get("/public/publications/search")
async def public_search(
    request: Request,
    pub_repo: PublicationRepository = Depends(get_publication_repository)
):
    params = request.query_params
    pub_filter = PublicationFilter(
        q=clean_text(params.get("q")),
        statuses=list(PUBLIC_STATUSES),
        levels=multi_values(request, "level"),
        has_pdf=True if parse_flag(params.get("hasPdf")) else None,
        year_from=parse_int(params.get("yearFrom")),
        year_to=parse_int(params.get("yearTo")),
        page=max(1, parse_int(params.get("page"), 1)),
        page_size=clamp(params.get("pageSize"), 1, 50, PUBLIC_PAGE_SIZE),
    ).normalized_years()

    rows, total = await pub_repo.search_publications(pub_filter)
    return {"ok": True, "data": rows, "total": total}


@router.get("/public/publications/{pub_id}")
async def public_publication(
    pub_id: str,
    pub_repo: PublicationRepository = Depends(get_publication_repository)
):
    return {"ok": True, "data": await _published_detail(pub_repo, pub_id)}


@router.get("/publications/search")
async def publication_search(
    request: Request,
    pub_repo: PublicationRepository = Depends(get_publication_repository)
):
    """
    Published catalogue search, most recently updated first.

    ``has_pdf`` takes 1, 0 or ALL; ``type`` ALL means any venue type.
    """
    params = request.query_params
    page = max(1, parse_int(params.get("page"), 1))
    page_size = clamp(params.get("pageSize"), 1, 50, PUBLIC_PAGE_SIZE)

    author = clean_text(params.get("author"))
    category = clean_text(params.get("category"))
    pub_filter = PublicationFilter(
        q=clean_text(params.get("q")),
        statuses=list(PUBLIC_STATUSES),
        authors=[author] if author else [],
        categories=[category] if category else [],
        venue_type=venue_type(params.get("type")),
        year_from=parse_int(params.get("year_from")),
        year_to=parse_int(params.get("year_to")),
        has_pdf=parse_tri_bool(params.get("has_pdf")),
        order_by="updated",
        page=page,
        page_size=page_size,
    ).normalized_years()

    rows, total = await pub_repo.list_with_relations(pub_filter)
    return {
        "ok": True,
        "data": [list_row(row) for row in rows],
        "total": total,
        "page": page,
        "pageSize": page_size,
    }


@router.get("/publications/search/{pub_id}")
async def publication_search_detail(
    pub_id: str,
    pub_repo: PublicationRepository = Depends(get_publication_repository)
):
    return {"ok": True, "data": await _published_detail(pub_repo, pub_id)}


@router.get("/publications/{pub_id}")
async def publication_detail(
    pub_id: str,
    pub_repo: PublicationRepository = Depends(get_publication_repository)
):
    return {"ok": True, "data": await _published_detail(pub_repo, pub_id)}
