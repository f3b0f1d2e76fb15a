"""
Staff review workflow router.

Provides REST API endpoints for:
- The review queue (under_review and needs_revision by default)
- Review detail with owner, status history and attached files
- Review decisions (approve / request revision / back to draft)
- Reviewer file attachments
"""

import structlog

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile, status

from pubportal.config import get_settings
from pubportal.dependencies import (
    get_current_session,
    get_history_repository,
    get_publication_repository,
    get_storage_service,
    require_roles,
)
from pubportal.models.auth import Role, SessionClaims
from pubportal.models.publication import (
    DEFAULT_REVIEW_QUEUE,
    PublicationFilter,
    ReviewActionRequest,
    ReviewDecision,
)
from pubportal.repositories.history_repo import HistoryRepository
from pubportal.repositories.publication_repo import PublicationRepository
from pubportal.routers.params import clean_text, multi_values, parse_id, parse_statuses
from pubportal.routers.uploads import read_upload, remove_document
from pubportal.services.history_service import diff_fields
from pubportal.services.publication_service import corresponding_email, load_detail, owner_author
from pubportal.services.storage_service import StorageService, document_key

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/staff/reviews",
    tags=["Reviews"],
    dependencies=[Depends(require_roles(Role.STAFF, Role.ADMIN))]
)

REVIEW_HISTORY_LIMIT = 20


@router.get("")
async def review_queue(
    request: Request,
    pub_repo: PublicationRepository = Depends(get_publication_repository)
):
    """
    Publications awaiting review, most recently updated first.

    ``status`` may repeat or hold a comma-separated list (any case).
    """
    statuses = parse_statuses(multi_values(request, "status")) or list(DEFAULT_REVIEW_QUEUE)
    pub_filter = PublicationFilter(
        q=clean_text(request.query_params.get("q")),
        scope="text",
        statuses=statuses,
        order_by="updated",
    )

    rows, _ = await pub_repo.search_publications(pub_filter)
    return {
        "ok": True,
        "data": [
            {
                "id": row["pub_id"],
                "title": row.get("pub_name"),
                "year": row.get("year"),
                "venue": row.get("venue_name"),
                "status": (row.get("status") or "").upper(),
                "updated_at": row.get("updated_at"),
            }
            for row in rows
        ],
    }


@router.get("/{pub_id}")
async def review_detail(
    pub_id: str,
    pub_repo: PublicationRepository = Depends(get_publication_repository),
    history_repo: HistoryRepository = Depends(get_history_repository),
    storage: StorageService = Depends(get_storage_service)
):
    target_id = parse_id(pub_id)
    detail = await load_detail(pub_repo, target_id)
    if not detail:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="publication not found")

    files = await storage.list_objects(get_settings().storage_publication_bucket, prefix=f"{target_id}/")

    detail["owner"] = owner_author(detail["authors"])
    detail["corresponding_email"] = corresponding_email(detail["authors"])
    detail["status_history"] = await history_repo.status_history(target_id, limit=REVIEW_HISTORY_LIMIT)
    detail["review_files_count"] = len(files)
    return {"ok": True, "data": detail}


@router.post("/{pub_id}/action")
async def review_action(
    pub_id: str,
    body: ReviewActionRequest,
    session: SessionClaims = Depends(get_current_session),
    pub_repo: PublicationRepository = Depends(get_publication_repository)
):
    """
    Apply a review decision.

    approve -> published, request -> needs_revision (lead authors are
    notified), draft -> draft.
    """
    target_id = parse_id(pub_id)
    try:
        decision = ReviewDecision((body.action or "").strip().lower())
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="unknown action")

    result = await pub_repo.apply_review_decision(
        target_id,
        decision.target_status,
        decision.value,
        clean_text(body.note),
        session.user_id
    )
    if not result:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="publication not found")

    return {"ok": True, "data": result}


@router.post("/{pub_id}/files")
async def upload_review_file(
    pub_id: str,
    file: UploadFile = File(None),
    session: SessionClaims = Depends(get_current_session),
    pub_repo: PublicationRepository = Depends(get_publication_repository),
    storage: StorageService = Depends(get_storage_service)
):
    """Attach a file to a publication and point its file_path at it."""
    target_id = parse_id(pub_id)
    data, content_type = await read_upload(file)

    before = await pub_repo.get_publication(target_id)
    if not before:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="publication not found")

    bucket = get_settings().storage_publication_bucket
    key = document_key(str(target_id), file.filename)
    await storage.upload(bucket, key, data, content_type=content_type)

    updates = {"file_path": key, "has_pdf": True}
    try:
        row = await pub_repo.update_publication(
            target_id,
            updates,
            session.user_id,
            changes=diff_fields(before, updates)
        )
    except Exception:
        await remove_document(storage, key)
        raise
    if not row:
        await remove_document(storage, key)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="publication not found")

    return {"ok": True, "path": key, "publicUrl": storage.public_url(bucket, key)}
