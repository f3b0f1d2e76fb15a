"""
Unit tests for publication reports and exports.

Tests cover:
- Totals, per-year series and top authors
- Category facets
- CSV, XLSX and PDF rendering
"""

import csv
import io

from openpyxl import load_workbook

from pubportal.services.report_service import (
    CSV_HEADERS,
    TOP_AUTHOR_LIMIT,
    PdfReportBuilder,
    build_report,
    category_facets,
    export_csv,
    export_xlsx,
)
from tests.factories import make_author, make_publication


def _pubs():
    return [
        make_publication(
            pub_id=1, year=2022, status="published",
            authors=[make_author("Anan"), make_author("Bua", person_type="STUDENT")],
            categories=["AI", "Agriculture"],
        ),
        make_publication(
            pub_id=2, year=2023, status="under_review",
            authors=[make_author("Anan")],
            categories=["AI"],
        ),
        make_publication(
            pub_id=3, year=2022, status="needs_revision",
            authors=[make_author("Chai"), make_author("Anan")],
            categories=[],
        ),
        make_publication(pub_id=4, year=None, status="draft", authors=[], categories=["Energy"]),
    ]


# ============================================================================
# AGGREGATION
# ============================================================================


class TestBuildReport:
    """Test report aggregation."""

    def test_totals(self):
        """Test status totals and the student count."""
        totals = build_report(_pubs())["totals"]
        assert totals == {
            "all": 4,
            "published": 1,
            "under_review": 1,
            "needs_revision": 1,
            "with_students": 1,
        }

    def test_by_year_ascending_without_missing_years(self):
        """Test the year series skips rows without a year."""
        assert build_report(_pubs())["byYear"] == [
            {"year": 2022, "count": 2},
            {"year": 2023, "count": 1},
        ]

    def test_top_authors(self):
        """Test author counters; needs_revision counts as under review."""
        top = build_report(_pubs())["topAuthors"]

        assert top[0] == {"name": "Anan", "published": 1, "under_review": 2, "total": 3}
        assert {a["name"] for a in top[1:]} == {"Bua", "Chai"}

    def test_top_authors_limit(self):
        """Test at most five authors are returned."""
        pubs = [make_publication(pub_id=i, authors=[make_author(f"Author {i}")]) for i in range(8)]
        assert len(build_report(pubs)["topAuthors"]) == TOP_AUTHOR_LIMIT

    def test_empty_set(self):
        """Test an empty set reports zeros."""
        report = build_report([])
        assert report["totals"]["all"] == 0
        assert report["byYear"] == []
        assert report["topAuthors"] == []

    def test_category_facets(self):
        """Test facets are ordered by frequency."""
        facets = category_facets(_pubs())
        assert facets[0] == {"name": "AI", "count": 2}
        assert {f["name"] for f in facets} == {"AI", "Agriculture", "Energy"}


# ============================================================================
# EXPORTS
# ============================================================================


class TestExports:
    """Test CSV, XLSX and PDF output."""

    def test_csv_rows(self):
        """Test the CSV header and author rendering."""
        rows = list(csv.reader(io.StringIO(export_csv(_pubs()))))

        assert rows[0] == CSV_HEADERS
        assert len(rows) == 5
        assert rows[1][0] == "1"
        assert rows[1][5] == "Anan (STAFF); Bua (STUDENT)"
        assert rows[4][1] == ""

    def test_xlsx_workbook(self):
        """Test the workbook sheet, header and data rows."""
        wb = load_workbook(io.BytesIO(export_xlsx(_pubs())))
        ws = wb["Publications"]

        assert ws.freeze_panes == "A2"
        assert ws.cell(row=1, column=2).value == "Title"
        assert ws.cell(row=1, column=1).font.bold
        assert ws.cell(row=2, column=1).value == 1
        assert ws.cell(row=2, column=6).value == "No"
        assert ws.cell(row=2, column=7).value == "Anan, Bua"
        assert ws.max_row == 5

    def test_xlsx_untitled(self):
        """Test a missing title renders as (untitled)."""
        wb = load_workbook(io.BytesIO(export_xlsx([make_publication(pub_name=None, authors=[])])))
        assert wb.active.cell(row=2, column=2).value == "(untitled)"

    def test_pdf_document(self):
        """Test the PDF builder returns a PDF document."""
        content = PdfReportBuilder().build(
            _pubs(),
            title="Publication Report",
            filters={"years": "1900-9999", "level": ""},
            summary=build_report(_pubs())["totals"],
        )
        assert content.startswith(b"%PDF")

    def test_pdf_empty_and_markup_safe(self):
        """Test an empty listing and markup characters still render."""
        builder = PdfReportBuilder()
        assert builder.build([]).startswith(b"%PDF")
        assert builder.build([make_publication(pub_name="A < B & C", authors=[])]).startswith(b"%PDF")
