"""
Authentication and user management models.

Pydantic schemas for:
- Roles and account status
- Login requests and session token claims
- User records as read from the database
- User management and self-service requests
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


# ============================================================================
# Enums
# ============================================================================


class Role(str, Enum):
    """
    Portal roles.

    - ADMIN: user management, logs, every portal
    - STAFF: review workflow, catalogue, reports
    - PROFESSOR: own publications and notifications
    """
    ADMIN = "ADMIN"
    STAFF = "STAFF"
    PROFESSOR = "PROFESSOR"


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


def _upper_choice(value: Optional[str], enum_cls: type, field: str) -> Optional[str]:
    if value is None:
        return None
    v_upper = str(value).strip().upper()
    allowed = [item.value for item in enum_cls]
    if v_upper not in allowed:
        raise ValueError(f"{field} must be one of {allowed}")
    return v_upper


# ============================================================================
# Session Models
# ============================================================================


class LoginRequest(BaseModel):
    """Login request. ``username`` also accepts an email address."""
    username: Optional[str] = Field(None, description="Username or email")
    password: Optional[str] = Field(None, description="Password")

    model_config = {
        "json_schema_extra": {
            "example": {"username": "somchai", "password": "correct horse"}
        }
    }


class SessionClaims(BaseModel):
    """
    Claims carried by the session token.

    The token is an HS256 JWT stored in the session cookie.
    """
    user_id: int = Field(..., description="User ID")
    username: str = Field(..., description="Username")
    role: Role = Field(..., description="Role at login time")
    exp: Optional[int] = Field(None, description="Expiration timestamp (Unix epoch)")
    iat: Optional[int] = Field(None, description="Issued at timestamp (Unix epoch)")

    def has_any_role(self, *roles: Role) -> bool:
        return self.role in roles


# ============================================================================
# User Records
# ============================================================================


class UserRecord(BaseModel):
    """A row of the ``users`` table."""
    user_id: int
    username: str
    email: Optional[str] = None
    password_hash: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    position: Optional[str] = None
    role: str = Role.PROFESSOR.value
    status: str = UserStatus.ACTIVE.value
    profile_image: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value

    @property
    def display_name(self) -> str:
        """First and last name, falling back to the username."""
        name = " ".join(p for p in (self.first_name, self.last_name) if p).strip()
        return name or self.username

    def public_dict(self) -> Dict[str, Any]:
        """All columns except the password hash."""
        return self.model_dump(exclude={"password_hash"})


# ============================================================================
# User Management Requests
# ============================================================================


class CreateUserRequest(BaseModel):
    """Admin-side user creation."""
    username: str = Field(..., min_length=1, max_length=100)
    password: Optional[str] = Field(None, description="Plain password, hashed on write")
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    position: Optional[str] = None
    role: str = Field(default=Role.PROFESSOR.value)
    status: str = Field(default=UserStatus.ACTIVE.value)
    profile_image: Optional[str] = None

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        return _upper_choice(v, Role, "role")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        return _upper_choice(v, UserStatus, "status")


class UpdateUserRequest(BaseModel):
    """Admin-side partial update. ``password`` is re-hashed."""
    username: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    position: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None
    profile_image: Optional[str] = None
    password: Optional[str] = None

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: Optional[str]) -> Optional[str]:
        return _upper_choice(v, Role, "role")

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: Optional[str]) -> Optional[str]:
        return _upper_choice(v, UserStatus, "status")


class ProfileUpdateRequest(BaseModel):
    """Self-service profile update."""
    username: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    position: Optional[str] = None
    profile_image: Optional[str] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: Optional[str]) -> str:
        if v is None or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class ResetPasswordRequest(BaseModel):
    user_id: Optional[int] = None
    new_password: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    """
    Password change.

    ``user_id`` is only honoured on the admin route; ``confirm_password``
    only on the self-service route.
    """
    user_id: Optional[int] = None
    current_password: Optional[str] = None
    new_password: Optional[str] = None
    confirm_password: Optional[str] = None
