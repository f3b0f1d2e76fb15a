"""
Publication, catalogue and review workflow models.

Provides Pydantic schemas for:
- Publication status vocabulary and review decisions
- Create / review / category request bodies
- The shared publication filter used by listings, search and reports
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


# ============================================================================
# Enums
# ============================================================================


class PublicationStatus(str, Enum):
    """
    Review workflow states (stored lower case).

    draft -> under_review -> published / needs_revision / archived
    """
    DRAFT = "draft"
    UNDER_REVIEW = "under_review"
    NEEDS_REVISION = "needs_revision"
    PUBLISHED = "published"
    ARCHIVED = "archived"

    @classmethod
    def normalize(cls, value: Optional[str]) -> Optional[str]:
        """Accept UI spellings ("Under Review", "NEEDS-REVISION") and return the stored value."""
        if value is None:
            return None
        key = str(value).strip().lower().replace(" ", "_").replace("-", "_")
        if not key:
            return None
        for member in cls:
            if member.value == key:
                return member.value
        raise ValueError(f"unknown status: {value}")


# Statuses visible on the public side. "approve"/"approved" are legacy
# spellings still present in older rows.
PUBLIC_STATUSES = ("published", "approve", "approved")

DEFAULT_REVIEW_QUEUE = (PublicationStatus.UNDER_REVIEW.value, PublicationStatus.NEEDS_REVISION.value)


class ReviewDecision(str, Enum):
    """Staff review decisions and the status each one leads to."""
    APPROVE = "approve"
    REQUEST = "request"
    DRAFT = "draft"

    @property
    def target_status(self) -> str:
        return {
            ReviewDecision.APPROVE: PublicationStatus.PUBLISHED.value,
            ReviewDecision.REQUEST: PublicationStatus.NEEDS_REVISION.value,
            ReviewDecision.DRAFT: PublicationStatus.DRAFT.value,
        }[self]


class CategoryStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class AuthorRole(str, Enum):
    LEAD = "LEAD"
    CO_AUTHOR = "CO_AUTHOR"
    CORRESPONDING = "CORRESPONDING"


# ============================================================================
# Request Models
# ============================================================================


class AuthorInput(BaseModel):
    """One author line of a publication form."""
    full_name: str = Field(..., min_length=1)
    email: Optional[str] = None
    affiliation: Optional[str] = None
    person_type: Optional[str] = None
    role: Optional[str] = None
    author_order: Optional[int] = Field(None, ge=1)

    @field_validator("full_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("full_name must not be blank")
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip().lower()
        return v or None


class PublicationCreateRequest(BaseModel):
    """Professor-side publication creation."""
    pub_name: Optional[str] = None
    abstract: Optional[str] = None
    level: Optional[str] = None
    year: Optional[int] = Field(None, ge=1000, le=9999)
    has_pdf: bool = False
    link_url: Optional[str] = None
    venue_name: Optional[str] = None
    venue_id: Optional[int] = None
    status: Optional[str] = PublicationStatus.DRAFT.value
    authors: List[AuthorInput] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> str:
        return PublicationStatus.normalize(v) or PublicationStatus.DRAFT.value

    @field_validator("categories")
    @classmethod
    def clean_categories(cls, v: List[str]) -> List[str]:
        seen: List[str] = []
        for name in v:
            name = (name or "").strip()
            if name and name not in seen:
                seen.append(name)
        return seen


class ReviewActionRequest(BaseModel):
    action: Optional[str] = None
    note: Optional[str] = None


class CategoryCreateRequest(BaseModel):
    name: Optional[str] = None


class CategoryUpdateRequest(BaseModel):
    category_name: Optional[str] = None
    status: Optional[str] = None


class NotificationReadRequest(BaseModel):
    noti_id: Optional[int] = None
    pub_id: Optional[int] = None


# ============================================================================
# Filter Model
# ============================================================================


class PublicationFilter(BaseModel):
    """
    Filter shared by every publication listing, search and report.

    List-valued filters are OR-combined unless noted. ``authors`` terms and,
    when ``categories_match_all`` is set, ``categories`` are AND-combined.
    A ``page_size`` of None returns every matching row.
    """
    q: Optional[str] = Field(None, description="Free text")
    scope: str = Field(default="all", description="all | title | author | venue | text")
    statuses: List[str] = Field(default_factory=list)
    levels: List[str] = Field(default_factory=list)
    year_from: Optional[int] = None
    year_to: Optional[int] = None
    has_pdf: Optional[bool] = None
    venue_type: Optional[str] = None
    authors: List[str] = Field(default_factory=list, description="Author name terms (AND)")
    categories: List[str] = Field(default_factory=list)
    categories_match_all: bool = False
    only_students: bool = False
    owner_user_id: Optional[int] = Field(None, description="Only publications linked to this user's persons")
    lead_only: bool = False
    order_by: str = Field(default="year", description="year | updated")
    page: int = Field(default=1, ge=1)
    page_size: Optional[int] = Field(default=None, ge=1)

    @field_validator("scope")
    @classmethod
    def validate_scope(cls, v: str) -> str:
        v = (v or "all").lower()
        return v if v in ("all", "title", "author", "venue", "text") else "all"

    @field_validator("order_by")
    @classmethod
    def validate_order(cls, v: str) -> str:
        if v not in ("year", "updated"):
            raise ValueError("order_by must be year or updated")
        return v

    def normalized_years(self) -> "PublicationFilter":
        """Copy with an inverted year range swapped."""
        if self.year_from is not None and self.year_to is not None and self.year_from > self.year_to:
            return self.model_copy(update={"year_from": self.year_to, "year_to": self.year_from})
        return self

    @property
    def offset(self) -> int:
        if self.page_size is None:
            return 0
        return (self.page - 1) * self.page_size
