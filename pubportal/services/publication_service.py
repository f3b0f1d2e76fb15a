"""
Publication read models and edit planning.

Shapes publication rows for the portals (detail with authors and
categories, owner resolution, in-process paging) and turns a loosely typed
edit payload (JSON or multipart form) into a column update plan.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import structlog
from pydantic import ValidationError

from pubportal.models.publication import AuthorInput, AuthorRole, PublicationStatus
from pubportal.repositories.publication_repo import PublicationRepository
from pubportal.services.history_service import AbstractOps

logger = structlog.get_logger(__name__)

OWNER_ROLES = (AuthorRole.LEAD.value, "OWNER")


# ============================================================================
# Read models
# ============================================================================


async def load_detail(
    repo: PublicationRepository,
    pub_id: int,
    statuses: Optional[Iterable[str]] = None
) -> Optional[Dict[str, Any]]:
    """
    Publication row with ``authors`` (ordered) and ``categories`` (names).

    Returns:
        Detail dict or None when missing (or outside ``statuses``)
    """
    pub = await repo.get_publication(pub_id, statuses=statuses)
    if not pub:
        return None

    authors = await repo.authors_for([pub_id])
    categories = await repo.categories_for([pub_id])
    pub["authors"] = authors.get(pub_id, [])
    pub["categories"] = [c["category_name"] for c in categories.get(pub_id, [])]
    return pub


def owner_author(authors: Sequence[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    """The LEAD (or legacy OWNER) author, else the first author."""
    for author in authors:
        if (author.get("role") or "").upper() in OWNER_ROLES:
            return author
    return authors[0] if authors else None


def corresponding_email(authors: Sequence[Mapping[str, Any]]) -> Optional[str]:
    """Email of the CORRESPONDING author, else of the owner."""
    for author in authors:
        if (author.get("role") or "").upper() == AuthorRole.CORRESPONDING.value and author.get("email"):
            return author["email"]
    owner = owner_author(authors)
    return owner.get("email") if owner else None


def paginate(items: Sequence[Any], page: int, page_size: int) -> List[Any]:
    start = (max(page, 1) - 1) * page_size
    return list(items[start:start + page_size])


def list_row(pub: Mapping[str, Any]) -> Dict[str, Any]:
    """Compact listing shape shared by search results."""
    return {
        "pub_id": pub["pub_id"],
        "pub_name": pub.get("pub_name"),
        "year": pub.get("year"),
        "level": pub.get("level"),
        "status": pub.get("status"),
        "venue_name": pub.get("venue_name"),
        "venue_type": pub.get("venue_type"),
        "has_pdf": bool(pub.get("has_pdf")),
        "link_url": pub.get("link_url"),
        "updated_at": pub.get("updated_at"),
        "authors": [
            {
                "person_id": a.get("person_id"),
                "full_name": a.get("full_name"),
                "person_type": a.get("person_type"),
                "role": a.get("role"),
            }
            for a in pub.get("authors") or []
        ],
        "categories": list(pub.get("categories") or []),
    }


# ============================================================================
# Edit planning
# ============================================================================


class PublicationEditError(ValueError):
    """An edit payload that cannot be applied."""


@dataclass
class PublicationEdit:
    """Parsed publication edit."""
    fields: Dict[str, Any] = field(default_factory=dict)
    abstract: AbstractOps = field(default_factory=AbstractOps)
    authors: Optional[List[AuthorInput]] = None
    categories: Optional[List[str]] = None
    remove_pdf: bool = False

    @property
    def is_empty(self) -> bool:
        return (
            not self.fields
            and self.abstract.is_empty
            and self.authors is None
            and self.categories is None
            and not self.remove_pdf
        )


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _int(value: Any, name: str) -> Optional[int]:
    if value is None or str(value).strip() == "":
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        raise PublicationEditError(f"{name} must be numeric")


def _bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _abstract_text(payload: Mapping[str, Any], name: str) -> Optional[str]:
    value = payload.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise PublicationEditError(f"{name} must be text")
    return value


def _json_list(value: Any, name: str) -> List[Any]:
    if isinstance(value, list):
        return value
    if value is None or str(value).strip() == "":
        return []
    try:
        parsed = json.loads(value)
    except (TypeError, ValueError):
        if name == "categories":
            return [item.strip() for item in str(value).split(",") if item.strip()]
        raise PublicationEditError(f"{name} must be a JSON list")
    if not isinstance(parsed, list):
        raise PublicationEditError(f"{name} must be a JSON list")
    return parsed


def parse_publication_edit(payload: Mapping[str, Any]) -> PublicationEdit:
    """
    Build an edit from a JSON body or multipart form.

    ``title`` is accepted for ``pub_name``. ``status`` only applies when
    non-empty. Abstract operations come from ``abstract`` (replace),
    ``abstract_prepend``, ``abstract_append``, ``abstract_delete`` and
    ``abstract_delete_from`` / ``abstract_delete_to``.

    Raises:
        PublicationEditError: On malformed values
    """
    edit = PublicationEdit()

    if "pub_name" in payload or "title" in payload:
        edit.fields["pub_name"] = _text(payload.get("pub_name", payload.get("title")))
    for name in ("venue_name", "level", "link_url"):
        if name in payload:
            edit.fields[name] = _text(payload[name])
    if "venue_id" in payload:
        edit.fields["venue_id"] = _int(payload["venue_id"], "venue_id")
    if "year" in payload:
        edit.fields["year"] = _int(payload["year"], "year")
    if "has_pdf" in payload:
        edit.fields["has_pdf"] = _bool(payload["has_pdf"])

    status = _text(payload.get("status"))
    if status:
        try:
            edit.fields["status"] = PublicationStatus.normalize(status)
        except ValueError as e:
            raise PublicationEditError(str(e))

    if "abstract" in payload:
        edit.abstract.replace_given = True
        edit.abstract.replace = _abstract_text(payload, "abstract")
    edit.abstract.prepend = _abstract_text(payload, "abstract_prepend") or None
    edit.abstract.append = _abstract_text(payload, "abstract_append") or None
    edit.abstract.delete = _abstract_text(payload, "abstract_delete") or None
    edit.abstract.delete_from = _int(payload.get("abstract_delete_from"), "abstract_delete_from")
    edit.abstract.delete_to = _int(payload.get("abstract_delete_to"), "abstract_delete_to")

    if "authors_json" in payload:
        try:
            edit.authors = [AuthorInput(**item) for item in _json_list(payload["authors_json"], "authors_json")]
        except (ValidationError, TypeError) as e:
            raise PublicationEditError(f"invalid authors_json: {e}")

    if "categories" in payload:
        names = [_text(name) for name in _json_list(payload["categories"], "categories")]
        edit.categories = [name for name in dict.fromkeys(names) if name]

    edit.remove_pdf = _bool(payload.get("remove_pdf", False))
    return edit
