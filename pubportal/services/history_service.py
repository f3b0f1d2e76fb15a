"""
Publication edit history.

Field-level change detection for the edit log, abstract editing operations,
and version replay: version N of a publication is the fold of its first N
edit-log rows in ``edited_at`` order, where the last write per field wins.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)

# Columns tracked in the edit log
TRACKED_FIELDS = (
    "pub_name",
    "abstract",
    "venue_id",
    "venue_name",
    "level",
    "year",
    "status",
    "has_pdf",
    "file_path",
    "link_url",
)


@dataclass(frozen=True)
class FieldChange:
    """One edit-log row to be written."""
    field: str
    old_value: Optional[str]
    new_value: Optional[str]


def stringify(value: Any) -> Optional[str]:
    """Edit-log representation of a column value."""
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def same_value(a: Any, b: Any) -> bool:
    """Compare as the edit log sees values: None and "" are equal."""
    return (stringify(a) or "") == (stringify(b) or "")


def diff_fields(before: Mapping[str, Any], updates: Mapping[str, Any]) -> List[FieldChange]:
    """
    Changes an update would make to tracked columns.

    Args:
        before: Current row
        updates: Column -> new value

    Returns:
        FieldChange per tracked column whose value differs
    """
    changes = []
    for field in TRACKED_FIELDS:
        if field not in updates or field not in before:
            continue
        if not same_value(before[field], updates[field]):
            changes.append(FieldChange(field, stringify(before[field]), stringify(updates[field])))
    return changes


# ============================================================================
# Abstract editing
# ============================================================================


@dataclass
class AbstractOps:
    """
    Requested abstract edit.

    ``replace`` wins over every other operation. Otherwise prepend, append,
    delete-first-occurrence and delete-slice apply in that order.
    """
    replace: Optional[str] = None
    replace_given: bool = False
    prepend: Optional[str] = None
    append: Optional[str] = None
    delete: Optional[str] = None
    delete_from: Optional[int] = None
    delete_to: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return not self.replace_given and all(
            v is None for v in (self.prepend, self.append, self.delete, self.delete_from, self.delete_to)
        )


def apply_abstract_ops(current: Optional[str], ops: AbstractOps) -> Tuple[bool, Optional[str]]:
    """
    Apply abstract edit operations.

    Args:
        current: Abstract as stored
        ops: Requested operations

    Returns:
        (touched, new abstract). The new abstract is None when only whitespace
        remains. A replace always counts as touched.
    """
    if ops.replace_given:
        text = ops.replace or ""
        return True, (text if text.strip() else None)

    original = current or ""
    text = original
    if ops.prepend is not None:
        text = ops.prepend + text
    if ops.append is not None:
        text = text + ops.append
    if ops.delete:
        text = text.replace(ops.delete, "", 1)
    if (
        ops.delete_from is not None
        and ops.delete_to is not None
        and 0 <= ops.delete_from <= ops.delete_to
    ):
        text = text[:ops.delete_from] + text[ops.delete_to:]

    if text == original:
        return False, current
    return True, (text if text.strip() else None)


# ============================================================================
# Version replay
# ============================================================================


def build_snapshot(edits: Iterable[Mapping[str, Any]], version: int) -> Dict[str, Optional[str]]:
    """
    Replay the first ``version`` edit-log rows.

    Args:
        edits: Rows with field_name and new_value, ordered by edited_at
        version: Number of rows to apply; past the end means all of them

    Returns:
        field_name -> last new_value written
    """
    snapshot: Dict[str, Optional[str]] = {}
    for index, edit in enumerate(edits):
        if index >= version:
            break
        snapshot[edit["field_name"]] = edit["new_value"]
    return snapshot


def diff_versions(edits: List[Mapping[str, Any]], from_version: int, to_version: int) -> List[Dict[str, Any]]:
    """
    Field-by-field comparison of two versions.

    Returns:
        One row per field present in either snapshot, sorted by field name:
        {field, old, next, changed}
    """
    left = build_snapshot(edits, from_version)
    right = build_snapshot(edits, to_version)

    rows = []
    for field in sorted(set(left) | set(right)):
        old = left.get(field)
        new = right.get(field)
        rows.append({"field": field, "old": old, "next": new, "changed": old != new})

    logger.debug(
        "history_diff_built",
        edits=len(edits),
        from_version=from_version,
        to_version=to_version,
        fields=len(rows)
    )
    return rows
