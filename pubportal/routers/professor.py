"""
Professor router: own publications, lookups and notifications.

Mounted under ``/api/professor``; the session middleware admits PROFESSOR
and ADMIN.
"""

import structlog
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile, status
from starlette.datastructures import UploadFile as StarletteUploadFile

from pubportal.config import get_settings
from pubportal.dependencies import (
    get_category_repository,
    get_current_session,
    get_history_repository,
    get_notification_repository,
    get_person_repository,
    get_publication_repository,
    get_storage_service,
    require_roles,
)
from pubportal.models.auth import Role, SessionClaims
from pubportal.models.publication import (
    CategoryStatus,
    NotificationReadRequest,
    PublicationCreateRequest,
    PublicationFilter,
)
from pubportal.repositories.category_repo import CategoryRepository
from pubportal.repositories.history_repo import HistoryRepository
from pubportal.repositories.notification_repo import NotificationRepository
from pubportal.repositories.person_repo import PersonRepository
from pubportal.repositories.publication_repo import PublicationRepository
from pubportal.routers.params import (
    clamp,
    clean_text,
    multi_values,
    parse_flag,
    parse_id,
    parse_int,
    parse_statuses,
    parse_tri_bool,
    venue_type,
)
from pubportal.routers.reports import attachment
from pubportal.routers.uploads import is_pdf, read_upload, remove_document
from pubportal.services.history_service import apply_abstract_ops, diff_fields
from pubportal.services.publication_service import (
    PublicationEditError,
    load_detail,
    parse_publication_edit,
)
from pubportal.services.report_service import PdfReportBuilder
from pubportal.services.storage_service import StorageService, document_key

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/professor",
    tags=["Professor"],
    dependencies=[Depends(require_roles(Role.PROFESSOR, Role.ADMIN))]
)

PROFESSOR_PAGE_SIZE = 10
EDIT_LOG_LIMIT = 50


# ============================================================================
# LOOKUPS
# ============================================================================


@router.get("/people")
async def people(
    q: Optional[str] = None,
    limit: Optional[str] = None,
    person_repo: PersonRepository = Depends(get_person_repository)
):
    """Author suggestions."""
    term = clean_text(q)
    if not term:
        return {"ok": True, "data": []}
    rows = await person_repo.search_people(term, limit=clamp(limit, 1, 50, 20))
    return {"ok": True, "data": rows}


@router.get("/venues")
async def venues(
    q: Optional[str] = None,
    limit: Optional[str] = None,
    person_repo: PersonRepository = Depends(get_person_repository)
):
    rows = await person_repo.list_venues(clean_text(q), limit=parse_int(limit))
    return {"ok": True, "data": rows}


@router.get("/publications/categories")
async def publication_categories(
    request: Request,
    category_repo: CategoryRepository = Depends(get_category_repository)
):
    category_status = clean_text(request.query_params.get("status")) or CategoryStatus.ACTIVE.value
    rows = await category_repo.list_categories(status=category_status, order_by_name=True)
    return {"ok": True, "data": rows}


# ============================================================================
# NOTIFICATIONS
# ============================================================================


@router.get("/notifications")
async def notifications(
    session: SessionClaims = Depends(get_current_session),
    notification_repo: NotificationRepository = Depends(get_notification_repository),
    history_repo: HistoryRepository = Depends(get_history_repository)
):
    """Lead-authored publications sent back for revision, with the latest reviewer comment."""
    rows = await notification_repo.revision_requests(session.user_id)
    comments = await history_repo.latest_review_comments([row["pub_id"] for row in rows])
    unread = await notification_repo.count_unread(session.user_id)

    items = [
        {
            "pub_id": row["pub_id"],
            "title": row.get("pub_name"),
            "venue_name": row.get("venue_name"),
            "year": row.get("year"),
            "status": row.get("status"),
            "updated_at": row.get("updated_at"),
            "latest_comment": comments.get(row["pub_id"]),
        }
        for row in rows
    ]
    return {"ok": True, "count": len(items), "items": items, "unread": unread}


@router.post("/notifications/read")
async def mark_notifications_read(
    body: NotificationReadRequest,
    session: SessionClaims = Depends(get_current_session),
    notification_repo: NotificationRepository = Depends(get_notification_repository)
):
    if body.noti_id is None and body.pub_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="require noti_id or pub_id")

    updated = await notification_repo.mark_read(session.user_id, noti_id=body.noti_id, pub_id=body.pub_id)
    return {"ok": True, "updated": updated}


# ============================================================================
# PUBLICATIONS
# ============================================================================


@router.get("/publications")
async def list_publications(
    request: Request,
    session: SessionClaims = Depends(get_current_session),
    pub_repo: PublicationRepository = Depends(get_publication_repository)
):
    params = request.query_params
    pub_filter = PublicationFilter(
        q=clean_text(params.get("q")),
        statuses=parse_statuses(multi_values(request, "status")),
        levels=multi_values(request, "level"),
        has_pdf=True if parse_flag(params.get("hasPdf")) else None,
        owner_user_id=session.user_id if parse_flag(params.get("mine")) else None,
        only_students=parse_flag(params.get("withStudents")),
        year_from=parse_int(params.get("yearFrom")),
        year_to=parse_int(params.get("yearTo")),
        page=max(1, parse_int(params.get("page"), 1)),
        page_size=clamp(params.get("pageSize"), 1, 50, PROFESSOR_PAGE_SIZE),
    )

    rows, total = await pub_repo.search_publications(pub_filter)
    return {"ok": True, "data": rows, "total": total}


@router.post("/publications", status_code=status.HTTP_201_CREATED)
async def create_publication(
    body: PublicationCreateRequest,
    session: SessionClaims = Depends(get_current_session),
    pub_repo: PublicationRepository = Depends(get_publication_repository)
):
    """Create a publication with its authors and categories."""
    pub_id = await pub_repo.create_publication(body, session.user_id)
    return {"ok": True, "pub_id": pub_id}


@router.get("/publications/report")
async def publications_report(
    request: Request,
    session: SessionClaims = Depends(get_current_session),
    pub_repo: PublicationRepository = Depends(get_publication_repository)
):
    """
    PDF listing of publications.

    ``author`` terms (comma separated) and categories must all match.
    """
    params = request.query_params
    pub_filter = PublicationFilter(
        q=clean_text(params.get("q")),
        scope=params.get("scope") or "all",
        year_from=parse_int(params.get("year_from", params.get("yearFrom"))),
        year_to=parse_int(params.get("year_to", params.get("yearTo"))),
        venue_type=venue_type(params.get("type")),
        levels=multi_values(request, "level"),
        statuses=parse_statuses(multi_values(request, "status")),
        has_pdf=parse_tri_bool(params.get("has_pdf", params.get("hasPdf"))),
        only_students=parse_flag(params.get("only_student")),
        authors=multi_values(request, "author"),
        categories=multi_values(request, "cat", "categories"),
        categories_match_all=True,
        owner_user_id=session.user_id if parse_flag(params.get("mine")) else None,
        lead_only=parse_flag(params.get("leaderOnly")),
    ).normalized_years()
    if pub_filter.lead_only and pub_filter.owner_user_id is None:
        pub_filter = pub_filter.model_copy(update={"owner_user_id": session.user_id})

    rows, _ = await pub_repo.list_with_relations(pub_filter)

    filters: Dict[str, Any] = {
        "q": pub_filter.q,
        "years": f"{pub_filter.year_from or ''}-{pub_filter.year_to or ''}".strip("-"),
        "level": ",".join(pub_filter.levels),
        "status": ",".join(pub_filter.statuses),
        "author": " AND ".join(pub_filter.authors),
        "categories": " AND ".join(pub_filter.categories),
        "mine": "yes" if pub_filter.owner_user_id else None,
        "lead only": "yes" if pub_filter.lead_only else None,
    }
    content = PdfReportBuilder().build(rows, title="Publications Report", filters=filters)
    logger.info("professor_report_exported", user_id=session.user_id, rows=len(rows))
    return attachment(content, "application/pdf", "publications-report.pdf")


@router.get("/publications/{pub_id}")
async def get_publication(
    pub_id: str,
    pub_repo: PublicationRepository = Depends(get_publication_repository),
    history_repo: HistoryRepository = Depends(get_history_repository)
):
    target_id = parse_id(pub_id)
    detail = await load_detail(pub_repo, target_id)
    if not detail:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="publication not found")

    detail["edit_log"] = await history_repo.edit_logs_for_publication(
        target_id,
        newest_first=True,
        limit=EDIT_LOG_LIMIT
    )
    return {"ok": True, "data": detail}


@router.patch("/publications/{pub_id}")
async def update_publication(
    pub_id: str,
    request: Request,
    session: SessionClaims = Depends(get_current_session),
    pub_repo: PublicationRepository = Depends(get_publication_repository),
    category_repo: CategoryRepository = Depends(get_category_repository),
    storage: StorageService = Depends(get_storage_service)
):
    """
    Edit a publication from a JSON body or a multipart form.

    Multipart forms may carry a ``pdf`` file or ``remove_pdf``. Every changed
    column is written to the edit log; a status change also goes to the
    status history.
    """
    target_id = parse_id(pub_id)
    multipart = (request.headers.get("content-type") or "").startswith("multipart/form-data")

    pdf: Optional[UploadFile] = None
    if multipart:
        form = await request.form()
        upload = form.get("pdf")
        if isinstance(upload, StarletteUploadFile) and upload.filename:
            pdf = upload
        payload = {key: value for key, value in form.items() if key != "pdf"}
    else:
        try:
            payload = await request.json()
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid JSON body")
        if not isinstance(payload, dict):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid JSON body")

    try:
        edit = parse_publication_edit(payload)
    except PublicationEditError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if pdf is not None and not is_pdf(pdf):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="only PDF files are accepted")

    if edit.is_empty and pdf is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="no fields to update")

    before = await pub_repo.get_publication(target_id)
    if not before:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="publication not found")

    updates = dict(edit.fields)
    touched, abstract = apply_abstract_ops(before.get("abstract"), edit.abstract)
    if touched:
        updates["abstract"] = abstract

    category_ids = None
    if edit.categories is not None:
        category_ids = await category_repo.ids_for_names(edit.categories)

    old_file = before.get("file_path")
    new_file = None
    if pdf is not None:
        data, content_type = await read_upload(pdf)
        new_file = document_key(str(target_id), pdf.filename)
        await storage.upload(get_settings().storage_publication_bucket, new_file, data, content_type=content_type)
        updates["file_path"] = new_file
        updates["has_pdf"] = True
    elif edit.remove_pdf:
        updates["file_path"] = None
        updates["has_pdf"] = False

    changes = diff_fields(before, updates)
    try:
        row = await pub_repo.update_publication(
            target_id,
            updates,
            session.user_id,
            changes,
            authors=edit.authors,
            category_ids=category_ids
        )
    except Exception:
        await remove_document(storage, new_file)
        raise
    if not row:
        await remove_document(storage, new_file)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="publication not found")

    if old_file and "file_path" in updates and updates["file_path"] != old_file:
        await remove_document(storage, old_file)

    response: Dict[str, Any] = {"ok": True, "data": row}
    if multipart:
        response["history"] = [
            {"field": c.field, "old_value": c.old_value, "new_value": c.new_value}
            for c in changes
        ]
        response["file_path"] = row.get("file_path")
        response["has_pdf"] = bool(row.get("has_pdf"))
    return response


@router.delete("/publications/{pub_id}")
async def delete_publication(
    pub_id: str,
    session: SessionClaims = Depends(get_current_session),
    pub_repo: PublicationRepository = Depends(get_publication_repository),
    storage: StorageService = Depends(get_storage_service)
):
    target_id = parse_id(pub_id)
    deleted = await pub_repo.delete_publication(target_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="publication not found")

    await remove_document(storage, deleted.get("file_path"))
    logger.info("professor_publication_deleted", pub_id=target_id, user_id=session.user_id)
    return {"ok": True}


@router.get("/publications/{pub_id}/comments")
async def publication_comments(
    pub_id: str,
    history_repo: HistoryRepository = Depends(get_history_repository)
):
    """
    Review timeline, newest first.

    Each entry carries the latest reviewer comment, or the status-change
    note when the publication has no comment yet.
    """
    target_id = parse_id(pub_id)
    history = await history_repo.status_history(target_id)
    latest = (await history_repo.latest_review_comments([target_id])).get(target_id)

    items = [
        {
            "id": row["history_id"],
            "created_at": row["changed_at"],
            "author_name": row.get("changer_name") or row.get("changer_username"),
            "author_role": row.get("changer_role"),
            "text": latest or row.get("note"),
            "status_tag": row.get("status"),
        }
        for row in history
    ]
    return {"ok": True, "data": items}


@router.get("/publications/{pub_id}/status-history")
async def publication_status_history(
    pub_id: str,
    history_repo: HistoryRepository = Depends(get_history_repository)
):
    return {"ok": True, "data": await history_repo.status_history(parse_id(pub_id))}
