"""
Query-string parsing shared by the routers.

Portal front-ends send loosely typed query strings (``hasPdf=1``,
``status=Under Review,published``, repeated ``cat``), so the routers read
them from the request and normalise them here.
"""

from datetime import date
from typing import List, Optional

from fastapi import HTTPException, Request, status

from pubportal.models.publication import PublicationFilter, PublicationStatus

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def parse_id(value, name: str = "id") -> int:
    """
    Positive integer ID from a path or body value.

    Raises:
        HTTPException: 400 "invalid id" otherwise
    """
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        number = 0
    if number <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"invalid {name}")
    return number


def parse_int(value: Optional[str], default: Optional[int] = None) -> Optional[int]:
    if value is None or str(value).strip() == "":
        return default
    try:
        return int(str(value).strip())
    except ValueError:
        return default


def clamp(value: Optional[str], low: int, high: int, default: int) -> int:
    number = parse_int(value, default)
    return max(low, min(high, number))


def parse_flag(value: Optional[str]) -> bool:
    """Checkbox-style flag: "1", "true", "yes" and "on" are set."""
    return value is not None and str(value).strip().lower() in _TRUE


def parse_tri_bool(value: Optional[str]) -> Optional[bool]:
    """True, False, or None for absent / "any" / "ALL"."""
    if value is None:
        return None
    key = str(value).strip().lower()
    if key in _TRUE:
        return True
    if key in _FALSE:
        return False
    return None


def clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def multi_values(request: Request, *names: str) -> List[str]:
    """
    Values of possibly repeated, possibly comma-separated query parameters.

    Blank items are dropped and duplicates removed, keeping first-seen order.
    """
    values: List[str] = []
    for name in names:
        for raw in request.query_params.getlist(name):
            for item in raw.split(","):
                item = item.strip()
                if item and item not in values:
                    values.append(item)
    return values


def parse_statuses(values: List[str]) -> List[str]:
    """
    Stored status values for UI spellings.

    Raises:
        HTTPException: 400 for an unknown status
    """
    try:
        return [s for s in (PublicationStatus.normalize(v) for v in values) if s]
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


def venue_type(value: Optional[str]) -> Optional[str]:
    """Venue type filter; "ALL" means no filter."""
    value = clean_text(value)
    if value is None or value.upper() == "ALL":
        return None
    return value


def report_filter(request: Request) -> PublicationFilter:
    """
    Filter for the staff reports, dashboard and exports.

    Years default to 1900..9999 and are swapped when inverted; categories
    match any of the given names.
    """
    params = request.query_params
    author = clean_text(params.get("author"))
    return PublicationFilter(
        year_from=parse_int(params.get("year_from"), 1900),
        year_to=parse_int(params.get("year_to"), 9999),
        levels=multi_values(request, "level", "levels"),
        statuses=parse_statuses(multi_values(request, "status", "statuses")),
        has_pdf=parse_tri_bool(params.get("has_pdf")),
        authors=[author] if author else [],
        only_students=parse_flag(params.get("only_student")),
        venue_type=venue_type(params.get("type")),
        categories=multi_values(request, "cat", "cats", "categories"),
    ).normalized_years()


def parse_date(value: Optional[str], name: str) -> Optional[date]:
    """
    ``YYYY-MM-DD`` query value.

    Raises:
        HTTPException: 400 for a malformed date
    """
    value = clean_text(value)
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"invalid {name} date")
