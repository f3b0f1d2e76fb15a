"""
Login and audit log models.

The portal's audit trail is derived from the ``login_log`` table: every
login attempt is one row, and the admin audit view projects those rows
into LOGIN / LOGIN_FAIL entries.
"""

from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, Field, model_validator


# ============================================================================
# Day bounds
# ============================================================================


def day_bounds(date_from: Optional[date], date_to: Optional[date]) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    UTC start of ``date_from`` (inclusive) and start of the day after
    ``date_to`` (exclusive).

    The last representable day has no following day, so it leaves the range
    open at the top.
    """
    start = datetime(date_from.year, date_from.month, date_from.day, tzinfo=timezone.utc) if date_from else None
    end = None
    if date_to and date_to < date.max:
        next_day = date_to + timedelta(days=1)
        end = datetime(next_day.year, next_day.month, next_day.day, tzinfo=timezone.utc)
    return start, end


# ============================================================================
# Enums
# ============================================================================


class LoginFailReason(str, Enum):
    """Reasons recorded for rejected login attempts."""
    USER_NOT_FOUND = "user_not_found"
    USER_SUSPENDED = "user_suspended"
    INVALID_PASSWORD = "invalid_password"


class AuditAction(str, Enum):
    LOGIN = "LOGIN"
    LOGIN_FAIL = "LOGIN_FAIL"


# ============================================================================
# Response Models
# ============================================================================


class LoginLogEntry(BaseModel):
    """A row of ``login_log`` as returned by the admin login-log listing."""
    log_id: int
    user_id: Optional[int] = None
    username: Optional[str] = None
    login_at: datetime
    success: bool
    ip_address: Optional[str] = None
    fail_reason: Optional[str] = None


class AuditEntry(BaseModel):
    """
    Audit view of a login attempt.

    ``action`` is LOGIN for successful attempts and LOGIN_FAIL otherwise.
    """
    id: int = Field(..., description="login_log row id")
    ts: datetime = Field(..., description="Attempt timestamp")
    ip: Optional[str] = None
    username: Optional[str] = None
    user_id: Optional[int] = None
    action: AuditAction
    success: bool
    reason: Optional[str] = None

    @classmethod
    def from_login_log(cls, entry: LoginLogEntry) -> "AuditEntry":
        return cls(
            id=entry.log_id,
            ts=entry.login_at,
            ip=entry.ip_address,
            username=entry.username,
            user_id=entry.user_id,
            action=AuditAction.LOGIN if entry.success else AuditAction.LOGIN_FAIL,
            success=entry.success,
            reason=entry.fail_reason,
        )


# ============================================================================
# Filter Models
# ============================================================================


class AuditFilter(BaseModel):
    """
    Filter parameters for the admin audit view.

    ``date_from`` is inclusive of the start of that day and ``date_to`` is
    inclusive of the whole day (the bound is the next day's start, exclusive).
    """
    q: Optional[str] = Field(None, description="Username contains")
    date_from: Optional[date] = Field(None, description="First day (inclusive)")
    date_to: Optional[date] = Field(None, description="Last day (inclusive)")
    success: Optional[bool] = Field(None, description="Only successful / failed attempts")
    ip: Optional[str] = Field(None, description="IP address contains")
    limit: int = Field(default=500, ge=1, le=2000, description="Maximum rows")

    @model_validator(mode="after")
    def validate_range(self) -> "AuditFilter":
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("from must not be after to")
        return self

    @property
    def start(self) -> Optional[datetime]:
        return day_bounds(self.date_from, None)[0]

    @property
    def end(self) -> Optional[datetime]:
        return day_bounds(None, self.date_to)[1]
