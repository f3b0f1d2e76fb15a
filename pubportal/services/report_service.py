"""
Publication reports and exports.

Aggregates a filtered publication set into totals, a per-year series and the
top authors, and renders the same set as CSV, XLSX (openpyxl) or PDF
(reportlab).
"""

import csv
import io
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence
from xml.sax.saxutils import escape

import structlog
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from pubportal.models.publication import PublicationStatus

logger = structlog.get_logger(__name__)

TOP_AUTHOR_LIMIT = 5

CSV_HEADERS = ["Publication ID", "Year", "Status", "Level", "Title", "Authors"]

XLSX_COLUMNS = [
    ("No.", 6),
    ("Title", 60),
    ("Year", 8),
    ("Status", 16),
    ("Level", 16),
    ("Has PDF", 10),
    ("Authors", 40),
]

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def is_student(author: Mapping[str, Any]) -> bool:
    return (author.get("person_type") or "").upper() == "STUDENT"


def author_names(pub: Mapping[str, Any]) -> List[str]:
    """Non-empty author names in author order."""
    return [
        (a.get("full_name") or "").strip()
        for a in pub.get("authors") or []
        if (a.get("full_name") or "").strip()
    ]


# ============================================================================
# Aggregation
# ============================================================================


def build_report(pubs: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Summarize a publication set.

    Args:
        pubs: Publications with ``authors`` attached

    Returns:
        {totals, byYear, topAuthors}. An author's ``under_review`` count
        includes publications that need revision.
    """
    statuses = Counter(p.get("status") for p in pubs)
    totals = {
        "all": len(pubs),
        "published": statuses[PublicationStatus.PUBLISHED.value],
        "under_review": statuses[PublicationStatus.UNDER_REVIEW.value],
        "needs_revision": statuses[PublicationStatus.NEEDS_REVISION.value],
        "with_students": sum(1 for p in pubs if any(is_student(a) for a in p.get("authors") or [])),
    }

    years = Counter(p.get("year") for p in pubs if p.get("year"))
    by_year = [{"year": year, "count": years[year]} for year in sorted(years)]

    in_review = (PublicationStatus.UNDER_REVIEW.value, PublicationStatus.NEEDS_REVISION.value)
    authors: Dict[str, Dict[str, int]] = {}
    for pub in pubs:
        for name in dict.fromkeys(author_names(pub)):
            counter = authors.setdefault(name, {"published": 0, "under_review": 0, "total": 0})
            counter["total"] += 1
            if pub.get("status") == PublicationStatus.PUBLISHED.value:
                counter["published"] += 1
            elif pub.get("status") in in_review:
                counter["under_review"] += 1

    # sorted() is stable, so ties keep first-seen order
    top_authors = sorted(
        ({"name": name, **counts} for name, counts in authors.items()),
        key=lambda item: item["total"],
        reverse=True,
    )[:TOP_AUTHOR_LIMIT]

    return {"totals": totals, "byYear": by_year, "topAuthors": top_authors}


def category_facets(items: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Category counts over a result set, most frequent first."""
    counts = Counter(name for item in items for name in item.get("categories") or [])
    return [{"name": name, "count": count} for name, count in counts.most_common()]


# ============================================================================
# Exports
# ============================================================================


def export_csv(pubs: Sequence[Mapping[str, Any]]) -> str:
    """
    CSV with one row per publication.

    Authors render as "name (person_type)" joined with "; ".
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_HEADERS)
    for pub in pubs:
        authors = "; ".join(
            f"{a.get('full_name') or ''} ({a.get('person_type') or ''})"
            for a in pub.get("authors") or []
        )
        writer.writerow([
            pub.get("pub_id"),
            pub.get("year") if pub.get("year") is not None else "",
            pub.get("status") or "",
            pub.get("level") or "",
            pub.get("pub_name") or "",
            authors,
        ])
    return buffer.getvalue()


def export_xlsx(pubs: Sequence[Mapping[str, Any]]) -> bytes:
    """Single-sheet workbook with a bold, frozen header row."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Publications"
    ws.freeze_panes = "A2"

    for col_idx, (header, width) in enumerate(XLSX_COLUMNS, start=1):
        cell = ws.cell(row=1, column=col_idx, value=header)
        cell.font = Font(bold=True)
        cell.alignment = Alignment(vertical="center")
        ws.column_dimensions[get_column_letter(col_idx)].width = width

    for row_idx, pub in enumerate(pubs, start=2):
        values = [
            row_idx - 1,
            pub.get("pub_name") or "(untitled)",
            pub.get("year") if pub.get("year") is not None else "",
            pub.get("status") or "",
            pub.get("level") or "",
            "Yes" if pub.get("has_pdf") else "No",
            ", ".join(author_names(pub)),
        ]
        for col_idx, value in enumerate(values, start=1):
            ws.cell(row=row_idx, column=col_idx, value=value)

    buffer = io.BytesIO()
    wb.save(buffer)
    logger.debug("xlsx_export_built", rows=len(pubs))
    return buffer.getvalue()


class PdfReportBuilder:
    """Renders publication listings as A4 PDF documents."""

    def __init__(self):
        self.styles = getSampleStyleSheet()
        self.styles.add(ParagraphStyle(
            name="ReportTitle",
            parent=self.styles["Title"],
            fontSize=16,
            spaceAfter=4 * mm,
        ))
        self.styles.add(ParagraphStyle(
            name="FilterLine",
            parent=self.styles["Normal"],
            fontSize=8,
            textColor=colors.grey,
            alignment=1,
        ))
        self.styles.add(ParagraphStyle(
            name="EntryTitle",
            parent=self.styles["Normal"],
            fontName="Helvetica-Bold",
            fontSize=11,
            spaceBefore=3 * mm,
        ))
        self.styles.add(ParagraphStyle(
            name="EntryMeta",
            parent=self.styles["Normal"],
            fontSize=9,
            textColor=colors.HexColor("#374151"),
        ))

    def build(
        self,
        pubs: Sequence[Mapping[str, Any]],
        title: str = "Publication Report",
        filters: Optional[Mapping[str, Any]] = None,
        summary: Optional[Mapping[str, Any]] = None,
    ) -> bytes:
        """
        Render the listing.

        Args:
            pubs: Publications with ``authors`` attached
            title: Document heading
            filters: Active filters, printed under the heading
            summary: Report totals, printed as a table before the listing

        Returns:
            PDF bytes; an empty listing still yields a one-page "No data" document
        """
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer,
            pagesize=A4,
            rightMargin=15 * mm,
            leftMargin=15 * mm,
            topMargin=15 * mm,
            bottomMargin=15 * mm,
            title=title,
        )

        story: List[Any] = [Paragraph(escape(title), self.styles["ReportTitle"])]

        generated = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC")
        story.append(Paragraph(f"Generated {generated}", self.styles["FilterLine"]))
        filter_line = "  ".join(
            f"{key}={value}" for key, value in (filters or {}).items() if value not in (None, "", [])
        )
        if filter_line:
            story.append(Paragraph(escape(filter_line), self.styles["FilterLine"]))
        story.append(Spacer(1, 4 * mm))

        if summary:
            table = Table(
                [list(summary.keys()), [str(v) for v in summary.values()]],
                hAlign="CENTER",
            )
            table.setStyle(TableStyle([
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#F3F4F6")),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#E5E7EB")),
                ("ALIGN", (0, 0), (-1, -1), "CENTER"),
            ]))
            story.append(table)
            story.append(Spacer(1, 4 * mm))

        if not pubs:
            story.append(Paragraph("No data", self.styles["Normal"]))
        for index, pub in enumerate(pubs, start=1):
            entry_title = escape(pub.get("pub_name") or "(untitled)")
            meta = (
                f"Year: {pub.get('year') or '-'} | Status: {pub.get('status') or '-'} | "
                f"Level: {pub.get('level') or '-'} | PDF: {'yes' if pub.get('has_pdf') else 'no'}"
            )
            authors = ", ".join(author_names(pub)) or "-"
            story.append(Paragraph(f"{index}. {entry_title}", self.styles["EntryTitle"]))
            story.append(Paragraph(escape(meta), self.styles["EntryMeta"]))
            story.append(Paragraph(f"Authors: {escape(authors)}", self.styles["EntryMeta"]))

        doc.build(story)
        logger.debug("pdf_export_built", rows=len(pubs))
        return buffer.getvalue()
