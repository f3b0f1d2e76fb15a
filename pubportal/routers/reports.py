"""
Staff reports, exports and catalogue search.

Reports and exports share one filter (see ``report_filter``) and always
work on the full matching set. Search pages and facets in process over the
filtered set.
"""

import structlog
from datetime import date
from typing import Any, Dict

from botocore.exceptions import BotoCoreError, ClientError
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response

from pubportal.config import get_settings
from pubportal.dependencies import (
    get_publication_repository,
    get_storage_service,
    get_user_repository,
    require_roles,
)
from pubportal.models.auth import Role
from pubportal.models.publication import PublicationFilter
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
    report_filter,
    venue_type,
)
from pubportal.services.publication_service import load_detail, paginate
from pubportal.services.report_service import (
    XLSX_MEDIA_TYPE,
    PdfReportBuilder,
    build_report,
    category_facets,
    export_csv,
    export_xlsx,
)
from pubportal.services.storage_service import StorageService

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/staff",
    tags=["Reports"],
    dependencies=[Depends(require_roles(Role.STAFF, Role.ADMIN))]
)

SEARCH_PAGE_SIZE = 20


def attachment(content, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def filter_summary(pub_filter: PublicationFilter) -> Dict[str, Any]:
    """Active filters for document headers."""
    return {
        "years": f"{pub_filter.year_from}-{pub_filter.year_to}",
        "level": ",".join(pub_filter.levels),
        "status": ",".join(pub_filter.statuses),
        "has_pdf": pub_filter.has_pdf,
        "author": ",".join(pub_filter.authors),
        "only_student": pub_filter.only_students or None,
        "type": pub_filter.venue_type,
        "categories": ",".join(pub_filter.categories),
    }


async def _report_rows(request: Request, pub_repo: PublicationRepository):
    pub_filter = report_filter(request)
    rows, _ = await pub_repo.list_with_relations(pub_filter)
    return pub_filter, rows


# ============================================================================
# REPORTS
# ============================================================================


@router.get("/reports")
async def report(
    request: Request,
    pub_repo: PublicationRepository = Depends(get_publication_repository)
):
    _, rows = await _report_rows(request, pub_repo)
    return {"ok": True, "data": build_report(rows)}


@router.get("/dashboard")
async def dashboard(
    request: Request,
    pub_repo: PublicationRepository = Depends(get_publication_repository),
    user_repo: UserRepository = Depends(get_user_repository)
):
    """Report plus the number of active professors."""
    _, rows = await _report_rows(request, pub_repo)
    data = build_report(rows)
    professors = await user_repo.list_users_by_role(Role.PROFESSOR.value, active_only=True)
    data["totalProfessors"] = len(professors)
    return {"ok": True, "data": data}


@router.get("/reports/export/csv")
async def export_report_csv(
    request: Request,
    pub_repo: PublicationRepository = Depends(get_publication_repository)
):
    _, rows = await _report_rows(request, pub_repo)
    logger.info("report_exported", format="csv", rows=len(rows))
    return attachment(export_csv(rows), "text/csv; charset=utf-8", f"publications-{date.today().isoformat()}.csv")


@router.get("/reports/export/json")
async def export_report_json(
    request: Request,
    pub_repo: PublicationRepository = Depends(get_publication_repository)
):
    _, rows = await _report_rows(request, pub_repo)
    logger.info("report_exported", format="json", rows=len(rows))
    return {"ok": True, "pubs": rows, "total": len(rows)}


@router.get("/reports/export/xlsx")
async def export_report_xlsx(
    request: Request,
    pub_repo: PublicationRepository = Depends(get_publication_repository)
):
    _, rows = await _report_rows(request, pub_repo)
    logger.info("report_exported", format="xlsx", rows=len(rows))
    return attachment(export_xlsx(rows), XLSX_MEDIA_TYPE, "publication-report.xlsx")


@router.get("/reports/export/pdf")
async def export_report_pdf(
    request: Request,
    pub_repo: PublicationRepository = Depends(get_publication_repository)
):
    pub_filter, rows = await _report_rows(request, pub_repo)
    content = PdfReportBuilder().build(
        rows,
        title="Publication Report",
        filters=filter_summary(pub_filter),
        summary=build_report(rows)["totals"],
    )
    logger.info("report_exported", format="pdf", rows=len(rows))
    return attachment(content, "application/pdf", "publication-report.pdf")


# ============================================================================
# SEARCH
# ============================================================================


@router.get("/search")
async def search(
    request: Request,
    pub_repo: PublicationRepository = Depends(get_publication_repository)
):
    """
    Catalogue search with category facets.

    Facets count the whole filtered set; ``items`` is one page of it.
    """
    params = request.query_params
    pub_filter = PublicationFilter(
        q=clean_text(params.get("q")),
        scope=params.get("scope") or "all",
        year_from=parse_int(params.get("year_from")),
        year_to=parse_int(params.get("year_to")),
        venue_type=venue_type(params.get("type")),
        levels=multi_values(request, "level", "levels"),
        has_pdf=parse_tri_bool(params.get("has_pdf")),
        only_students=parse_flag(params.get("only_student")),
        categories=multi_values(request, "cat", "cats", "categories"),
    ).normalized_years()

    page = max(1, parse_int(params.get("page"), 1))
    page_size = clamp(params.get("page_size"), 1, 50, SEARCH_PAGE_SIZE)

    rows, total = await pub_repo.list_with_relations(pub_filter)
    return {
        "ok": True,
        "data": {
            "items": paginate(rows, page, page_size),
            "total": total,
            "page": page,
            "page_size": page_size,
            "facets": {"categories": category_facets(rows)},
        },
    }


@router.get("/search/{pub_id}")
async def search_detail(
    pub_id: str,
    pub_repo: PublicationRepository = Depends(get_publication_repository),
    storage: StorageService = Depends(get_storage_service)
):
    """Publication detail with a short-lived download URL when a file is stored."""
    detail = await load_detail(pub_repo, parse_id(pub_id))
    if not detail:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="publication not found")

    detail["pdf_url"] = None
    if detail.get("file_path"):
        detail["pdf_url"] = await storage.presigned_url(
            get_settings().storage_publication_bucket,
            detail["file_path"]
        )
    return {"ok": True, "data": detail}


@router.delete("/search/{pub_id}")
async def delete_publication(
    pub_id: str,
    pub_repo: PublicationRepository = Depends(get_publication_repository),
    storage: StorageService = Depends(get_storage_service)
):
    """
    Delete a publication with all its relations, then its stored files.

    Storage cleanup failures are logged; the database delete stands.
    """
    target_id = parse_id(pub_id)
    deleted = await pub_repo.delete_publication(target_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="publication not found")

    bucket = get_settings().storage_publication_bucket
    try:
        keys = await storage.list_objects(bucket, prefix=f"{target_id}/")
        file_path = deleted.get("file_path")
        if file_path and file_path not in keys:
            keys.append(file_path)
        await storage.delete_objects(bucket, keys)
    except (ClientError, BotoCoreError) as e:
        logger.warning("publication_files_cleanup_failed", pub_id=target_id, error=str(e))

    return {"ok": True}
