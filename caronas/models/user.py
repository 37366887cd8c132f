"""User Model - Defines the user schema for MongoDB persistence."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

DISPLAY_NAME_MAX_LENGTH = 100


class UserRole(str, Enum):
    """User roles for RBAC."""
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


MODERATOR_PERMISSIONS = {
    "rides:delete",
    "rides:manage_passengers",
    "users:list",
    "users:ban",
}

ROLE_PERMISSIONS = {
    UserRole.USER.value: set(),
    UserRole.MODERATOR.value: MODERATOR_PERMISSIONS,
    UserRole.ADMIN.value: MODERATOR_PERMISSIONS | {"users:set_role", "logs:read"},
}


class User(BaseModel):
    """
    User model for MongoDB.

    Fields:
    - user_id: Firebase UID, trusted as driver/passenger/rater id
    - email: Email verified by Firebase (absent for phone sign-in)
    - display_name: Name shown on rides and ratings
    - phone: Shared with the driver when requesting a seat
    - role: RBAC role (user/moderator/admin)
    - banned: Banned users cannot publish rides or request seats
    - ban_reason: Reason given by the moderator
    """
    user_id: str = Field(..., description="Firebase UID")
    email: Optional[EmailStr] = Field(None, description="User email")
    display_name: str = Field(..., description="Display name")
    phone: Optional[str] = Field(None, description="Phone number")
    role: UserRole = Field(default=UserRole.USER, description="User role")
    banned: bool = Field(default=False)
    ban_reason: Optional[str] = Field(None)
    banned_at: Optional[datetime] = Field(None)
    banned_by: Optional[str] = Field(None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("display_name")
    @classmethod
    def clip_display_name(cls, v: str) -> str:
        # Same cap as PassengerInfo.passenger_name
        return v.strip()[:DISPLAY_NAME_MAX_LENGTH]

    class Config:
        use_enum_values = True


class UserUpdate(BaseModel):
    """Data that can be updated by the user."""
    display_name: Optional[str] = Field(None, min_length=1, max_length=DISPLAY_NAME_MAX_LENGTH)
    phone: Optional[str] = Field(None, max_length=20)


class RoleUpdate(BaseModel):
    role: UserRole


class BanUserRequest(BaseModel):
    """Request to ban a user."""
    reason: str = Field(..., min_length=1, max_length=500)

    @field_validator("reason")
    @classmethod
    def reason_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("A ban reason is required")
        return v.strip()


def has_permission(user: Optional[User], permission: str) -> bool:
    """Whether the user's role grants the permission."""
    if user is None:
        return False
    return permission in ROLE_PERMISSIONS.get(UserRole(user.role).value, set())
