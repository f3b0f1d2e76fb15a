"""
SQLAlchemy ORM models for the publication portal schema.

The application queries these tables with asyncpg; the declarative models
are the single source for DDL (see ``pubportal.db.create_schema``).

Uses SQLAlchemy 2.0 declarative syntax.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ============================================================================
# SQLAlchemy Base
# ============================================================================


class Base(DeclarativeBase):
    """Base class for all portal tables."""
    pass


def _created_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP")
    )


# ============================================================================
# Accounts
# ============================================================================


class User(Base):
    """
    Portal account.

    ``role`` is one of ADMIN / STAFF / PROFESSOR and ``status`` one of
    ACTIVE / SUSPENDED; both are stored upper case.
    """
    __tablename__ = "users"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    position: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False, server_default="PROFESSOR")
    status: Mapped[str] = mapped_column(String(20), nullable=False, server_default="ACTIVE")
    profile_image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_users_role_status", "role", "status"),
        Index("idx_users_email", "email"),
    )


class LoginLog(Base):
    """One row per login attempt, successful or not."""
    __tablename__ = "login_log"

    log_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True
    )
    username: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    login_at: Mapped[datetime] = _created_at()
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    fail_reason: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    __table_args__ = (
        Index("idx_login_log_login_at", "login_at"),
        Index("idx_login_log_username", "username"),
    )


# ============================================================================
# Catalogue
# ============================================================================


class Person(Base):
    """An author. ``user_id`` links the author to a portal account."""
    __tablename__ = "person"

    person_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    affiliation: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    person_type: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True
    )

    __table_args__ = (
        Index("idx_person_full_name", "full_name"),
        Index("idx_person_user_id", "user_id"),
    )


class Venue(Base):
    __tablename__ = "venue"

    venue_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)


class Category(Base):
    __tablename__ = "category"

    category_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    category_name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, server_default="ACTIVE")
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _created_at()


class Publication(Base):
    """
    A publication and its review state.

    ``status`` follows draft -> under_review -> published / needs_revision /
    archived and is stored lower case.
    """
    __tablename__ = "publication"

    pub_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    pub_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    abstract: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    venue_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("venue.venue_id", ondelete="SET NULL"), nullable=True
    )
    venue_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    level: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, server_default="draft")
    has_pdf: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    file_path: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    link_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_publication_status", "status"),
        Index("idx_publication_year", "year"),
    )


class PublicationPerson(Base):
    __tablename__ = "publication_person"

    pub_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("publication.pub_id", ondelete="CASCADE"), primary_key=True
    )
    person_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("person.person_id", ondelete="CASCADE"), primary_key=True
    )
    author_order: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")
    role: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)


class CategoryPublication(Base):
    __tablename__ = "category_publication"

    pub_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("publication.pub_id", ondelete="CASCADE"), primary_key=True
    )
    category_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("category.category_id", ondelete="CASCADE"), primary_key=True
    )


# ============================================================================
# History and workflow
# ============================================================================


class PublicationEditLog(Base):
    """Field-level change log; replayed to rebuild publication versions."""
    __tablename__ = "publication_edit_log"

    edit_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    pub_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("publication.pub_id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True
    )
    field_name: Mapped[str] = mapped_column(String(64), nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    new_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    edited_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_edit_log_pub_edited", "pub_id", "edited_at"),
    )


class PublicationStatusHistory(Base):
    __tablename__ = "publication_status_history"

    history_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    pub_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("publication.pub_id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    user_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True
    )
    changed_by: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True
    )
    changed_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_status_history_pub", "pub_id", "changed_at"),
    )


class ReviewAction(Base):
    __tablename__ = "review_action"

    review_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    pub_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("publication.pub_id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True
    )
    reviewer_user_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("users.user_id", ondelete="SET NULL"), nullable=True
    )
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = _created_at()


class Notification(Base):
    __tablename__ = "notification"

    noti_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False
    )
    pub_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("publication.pub_id", ondelete="CASCADE"), nullable=True
    )
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_notification_user_read", "user_id", "is_read"),
    )
