"""
Unit tests for publication read models and edit parsing.

Tests cover:
- Edit payload parsing (JSON bodies and multipart forms)
- Owner and corresponding-author resolution
- Detail loading and in-process paging
"""

import pytest
from unittest.mock import AsyncMock, Mock

from pubportal.services.publication_service import (
    PublicationEditError,
    corresponding_email,
    list_row,
    load_detail,
    owner_author,
    paginate,
    parse_publication_edit,
)
from tests.factories import make_author, make_publication


# ============================================================================
# EDIT PARSING
# ============================================================================


class TestParsePublicationEdit:
    """Test edit payload parsing."""

    def test_empty_payload(self):
        """Test an empty payload is an empty edit."""
        assert parse_publication_edit({}).is_empty

    def test_title_alias(self):
        """Test title maps to pub_name."""
        assert parse_publication_edit({"title": "  New  "}).fields == {"pub_name": "New"}

    def test_form_values_are_coerced(self):
        """Test multipart strings become ints and booleans."""
        edit = parse_publication_edit({"year": "2024", "venue_id": "", "has_pdf": "true"})
        assert edit.fields == {"year": 2024, "venue_id": None, "has_pdf": True}

    def test_non_numeric_year(self):
        """Test a non-numeric year is rejected."""
        with pytest.raises(PublicationEditError, match="year must be numeric"):
            parse_publication_edit({"year": "twenty"})

    def test_status_only_when_present(self):
        """Test empty status is skipped and UI spellings are normalised."""
        assert "status" not in parse_publication_edit({"status": ""}).fields
        assert parse_publication_edit({"status": "Under Review"}).fields["status"] == "under_review"

    def test_unknown_status(self):
        """Test an unknown status is an edit error."""
        with pytest.raises(PublicationEditError):
            parse_publication_edit({"status": "accepted"})

    def test_abstract_operations(self):
        """Test abstract keys become operations."""
        edit = parse_publication_edit({
            "abstract_append": " More.",
            "abstract_delete_from": "0",
            "abstract_delete_to": "3",
        })
        assert edit.abstract.append == " More."
        assert (edit.abstract.delete_from, edit.abstract.delete_to) == (0, 3)
        assert not edit.abstract.replace_given
        assert not edit.is_empty

    def test_abstract_replace_with_null(self):
        """Test an explicit null abstract is a replace."""
        edit = parse_publication_edit({"abstract": None})
        assert edit.abstract.replace_given
        assert edit.abstract.replace is None

    @pytest.mark.parametrize("name,value", [
        ("abstract", 5),
        ("abstract_prepend", ["x"]),
        ("abstract_append", 123),
        ("abstract_delete", {"text": "x"}),
    ])
    def test_abstract_values_must_be_text(self, name, value):
        """Test non-string abstract values are rejected."""
        with pytest.raises(PublicationEditError, match=f"{name} must be text"):
            parse_publication_edit({name: value})

    def test_authors_json_string(self):
        """Test authors_json as a JSON string (multipart)."""
        edit = parse_publication_edit({
            "authors_json": '[{"full_name": "Anan", "role": "LEAD"}, {"full_name": "Bua"}]'
        })
        assert [a.full_name for a in edit.authors] == ["Anan", "Bua"]
        assert edit.authors[0].role == "LEAD"

    def test_authors_json_list(self):
        """Test authors_json as a list (JSON body)."""
        edit = parse_publication_edit({"authors_json": [{"full_name": "Anan"}]})
        assert edit.authors[0].full_name == "Anan"

    @pytest.mark.parametrize("value", ["{not json", '{"full_name": "x"}', '[{"email": "a@b.c"}]'])
    def test_bad_authors_json(self, value):
        """Test malformed author lists are rejected."""
        with pytest.raises(PublicationEditError):
            parse_publication_edit({"authors_json": value})

    @pytest.mark.parametrize("value", ['["AI", "Energy", "AI"]', ["AI", "Energy"], "AI, Energy"])
    def test_categories(self, value):
        """Test categories from JSON, list or comma string, deduplicated."""
        assert parse_publication_edit({"categories": value}).categories == ["AI", "Energy"]

    def test_empty_categories_clear_links(self):
        """Test an empty category list is an explicit replacement."""
        assert parse_publication_edit({"categories": "[]"}).categories == []

    def test_remove_pdf(self):
        """Test remove_pdf accepts form booleans."""
        assert parse_publication_edit({"remove_pdf": "1"}).remove_pdf
        assert not parse_publication_edit({"remove_pdf": "0"}).remove_pdf


# ============================================================================
# READ MODELS
# ============================================================================


class TestReadModels:
    """Test owner resolution, paging and detail loading."""

    def test_owner_prefers_lead(self):
        """Test the LEAD author is the owner."""
        authors = [make_author("A"), make_author("B", role="LEAD")]
        assert owner_author(authors)["full_name"] == "B"

    def test_owner_legacy_role(self):
        """Test the legacy OWNER role counts."""
        assert owner_author([make_author("A"), make_author("B", role="owner")])["full_name"] == "B"

    def test_owner_falls_back_to_first(self):
        """Test the first author without a lead, None without authors."""
        assert owner_author([make_author("A"), make_author("B")])["full_name"] == "A"
        assert owner_author([]) is None

    def test_corresponding_email(self):
        """Test the corresponding author's email wins over the owner's."""
        authors = [
            make_author("A", role="LEAD", email="lead@x.org"),
            make_author("B", role="CORRESPONDING", email="corr@x.org"),
        ]
        assert corresponding_email(authors) == "corr@x.org"
        assert corresponding_email(authors[:1]) == "lead@x.org"

    def test_paginate(self):
        """Test page slicing."""
        items = list(range(25))
        assert paginate(items, 1, 10) == list(range(10))
        assert paginate(items, 3, 10) == [20, 21, 22, 23, 24]
        assert paginate(items, 4, 10) == []

    def test_list_row(self):
        """Test the compact listing shape."""
        row = list_row(make_publication(authors=[make_author("A", email="x@y.z")], categories=["AI"]))
        assert row["has_pdf"] is False
        assert row["categories"] == ["AI"]
        assert "email" not in row["authors"][0]

    @pytest.mark.asyncio
    async def test_load_detail(self):
        """Test authors and category names are attached."""
        repo = Mock(
            get_publication=AsyncMock(return_value=make_publication(pub_id=10)),
            authors_for=AsyncMock(return_value={10: [make_author("A")]}),
            categories_for=AsyncMock(return_value={10: [{"category_id": 1, "category_name": "AI"}]}),
        )

        detail = await load_detail(repo, 10, statuses=["published"])

        repo.get_publication.assert_awaited_once_with(10, statuses=["published"])
        assert detail["authors"][0]["full_name"] == "A"
        assert detail["categories"] == ["AI"]

    @pytest.mark.asyncio
    async def test_load_detail_missing(self):
        """Test a missing publication loads nothing else."""
        repo = Mock(get_publication=AsyncMock(return_value=None), authors_for=AsyncMock())

        assert await load_detail(repo, 10) is None
        repo.authors_for.assert_not_awaited()
