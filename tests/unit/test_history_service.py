"""
Unit tests for publication edit history.

Tests cover:
- Field change detection for the edit log
- Abstract editing operations
- Version replay and version diffs
"""

import pytest

from pubportal.services.history_service import (
    AbstractOps,
    FieldChange,
    apply_abstract_ops,
    build_snapshot,
    diff_fields,
    diff_versions,
    stringify,
)


# ============================================================================
# FIELD CHANGES
# ============================================================================


class TestDiffFields:
    """Test change detection between a row and an update."""

    def test_changed_column_is_reported(self):
        """Test a changed title yields one change with string values."""
        changes = diff_fields({"pub_name": "Old", "year": 2020}, {"pub_name": "New"})
        assert changes == [FieldChange("pub_name", "Old", "New")]

    def test_values_compare_as_strings(self):
        """Test 2020 and "2020" are the same value."""
        assert diff_fields({"year": 2020}, {"year": "2020"}) == []

    def test_none_and_empty_string_are_equal(self):
        """Test clearing an already empty link is not a change."""
        assert diff_fields({"link_url": None}, {"link_url": ""}) == []

    def test_booleans_are_logged_lowercase(self):
        """Test has_pdf flips are logged as true/false."""
        changes = diff_fields({"has_pdf": False}, {"has_pdf": True})
        assert changes == [FieldChange("has_pdf", "false", "true")]

    def test_untracked_columns_are_ignored(self):
        """Test columns outside the tracked set never reach the log."""
        assert diff_fields({"created_at": "a"}, {"created_at": "b"}) == []

    def test_stringify(self):
        """Test edit-log representation of values."""
        assert stringify(None) is None
        assert stringify(True) == "true"
        assert stringify(7) == "7"


# ============================================================================
# ABSTRACT OPERATIONS
# ============================================================================


class TestAbstractOps:
    """Test abstract edits."""

    def test_replace_wins(self):
        """Test replace ignores the other operations."""
        ops = AbstractOps(replace="New text", replace_given=True, append=" ignored")
        assert apply_abstract_ops("Old", ops) == (True, "New text")

    def test_whitespace_replace_becomes_none(self):
        """Test a blank abstract is stored as null."""
        assert apply_abstract_ops("Old", AbstractOps(replace="   ", replace_given=True)) == (True, None)

    def test_prepend_and_append(self):
        """Test prepend then append."""
        ops = AbstractOps(prepend="[Draft] ", append=" (v2)")
        assert apply_abstract_ops("Body", ops) == (True, "[Draft] Body (v2)")

    def test_delete_removes_first_occurrence_only(self):
        """Test delete removes a single occurrence."""
        touched, text = apply_abstract_ops("a b a b", AbstractOps(delete="a "))
        assert touched is True
        assert text == "b a b"

    def test_delete_slice(self):
        """Test delete_from/delete_to remove a slice."""
        touched, text = apply_abstract_ops("0123456789", AbstractOps(delete_from=2, delete_to=5))
        assert touched is True
        assert text == "0156789"

    def test_invalid_slice_is_ignored(self):
        """Test an inverted slice leaves the abstract untouched."""
        assert apply_abstract_ops("abc", AbstractOps(delete_from=2, delete_to=1)) == (False, "abc")

    def test_no_ops_leaves_abstract(self):
        """Test an empty op set reports untouched."""
        ops = AbstractOps()
        assert ops.is_empty
        assert apply_abstract_ops(None, ops) == (False, None)

    def test_deleting_everything_becomes_none(self):
        """Test an abstract emptied by delete is stored as null."""
        assert apply_abstract_ops("gone", AbstractOps(delete="gone")) == (True, None)


# ============================================================================
# VERSIONS
# ============================================================================


EDITS = [
    {"field_name": "pub_name", "new_value": "Draft title"},
    {"field_name": "year", "new_value": "2022"},
    {"field_name": "pub_name", "new_value": "Final title"},
    {"field_name": "status", "new_value": "under_review"},
]


class TestVersionReplay:
    """Test replaying the edit log into versions."""

    def test_version_zero_is_empty(self):
        """Test version 0 has no fields."""
        assert build_snapshot(EDITS, 0) == {}

    def test_last_write_wins(self):
        """Test version 3 carries the second title."""
        assert build_snapshot(EDITS, 3) == {"pub_name": "Final title", "year": "2022"}

    def test_version_past_end_clamps(self):
        """Test a version beyond the log is the full replay."""
        assert build_snapshot(EDITS, 99) == build_snapshot(EDITS, len(EDITS))

    def test_diff_rows_sorted_by_field(self):
        """Test diff rows cover both snapshots and flag changes."""
        rows = diff_versions(EDITS, 1, 4)

        assert [row["field"] for row in rows] == ["pub_name", "status", "year"]
        assert rows[0] == {"field": "pub_name", "old": "Draft title", "next": "Final title", "changed": True}
        assert rows[1] == {"field": "status", "old": None, "next": "under_review", "changed": True}

    @pytest.mark.parametrize("version", [1, 2, 4])
    def test_same_version_has_no_changes(self, version):
        """Test diffing a version with itself."""
        assert all(not row["changed"] for row in diff_versions(EDITS, version, version))
