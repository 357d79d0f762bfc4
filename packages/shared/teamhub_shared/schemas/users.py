"""User schemas shared by the tenant-scoped and admin endpoints."""

from __future__ import annotations

import re
import uuid
from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from .common import CamelModel, Role, UpdateModel

# Avatars are stored inline as data URLs, capped at 2 MB of image data
AVATAR_MAX_BYTES = 2 * 1024 * 1024
AVATAR_MAX_LENGTH = 4 * ((AVATAR_MAX_BYTES + 2) // 3) + 32
AVATAR_DATA_URL = re.compile(r"^data:image/(jpeg|jpg|png|webp|gif);base64,")


def validate_avatar(value: str) -> str:
    """Accept a base64 ``data:image/...`` URL of at most ``AVATAR_MAX_BYTES``."""
    match = AVATAR_DATA_URL.match(value)
    if match is None:
        raise ValueError("Invalid image format. Supported formats: JPEG, PNG, WebP, GIF")
    data = value[match.end():]
    if not data:
        raise ValueError("Invalid base64 data")
    if len(data) * 3 // 4 > AVATAR_MAX_BYTES:
        raise ValueError("Image size exceeds 2MB limit")
    return value


class UserProfile(CamelModel):
    first_name: str = Field(default="", max_length=100)
    last_name: str = Field(default="", max_length=100)
    avatar: Optional[str] = None
    phone: Optional[str] = Field(default=None, max_length=40)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class UserProfileUpdate(UpdateModel):
    """
    Allow-listed profile fields. Anything else is a validation error.

    Names may be changed but not cleared; ``null`` for ``avatar`` or ``phone``
    removes the value.
    """
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    avatar: Optional[str] = Field(default=None, max_length=AVATAR_MAX_LENGTH)
    phone: Optional[str] = Field(default=None, max_length=40)

    @field_validator("first_name", "last_name")
    @classmethod
    def name_not_null(cls, v: Optional[str]) -> str:
        if v is None:
            raise ValueError("Name cannot be null")
        return v

    @field_validator("avatar")
    @classmethod
    def avatar_data_url(cls, v: Optional[str]) -> Optional[str]:
        return v if v is None else validate_avatar(v)


class AvatarUploadRequest(UpdateModel):
    avatar: str = Field(max_length=AVATAR_MAX_LENGTH)

    @field_validator("avatar")
    @classmethod
    def avatar_data_url(cls, v: str) -> str:
        return validate_avatar(v)


class UserUpdateRequest(UpdateModel):
    """Update a user's profile (self or admin) or role (admin)."""
    profile: Optional[UserProfileUpdate] = None
    role: Optional[Role] = None


class UserRoleUpdate(UpdateModel):
    role: Role


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class UserSummary(CamelModel):
    """Author/participant card embedded in chat payloads."""
    id: uuid.UUID
    email: str
    profile: UserProfile


class UserResponse(CamelModel):
    """Sanitized user: never carries the password hash."""
    id: uuid.UUID
    tenant_id: uuid.UUID
    email: str
    role: Role
    profile: UserProfile
    is_active: bool
    created_at: datetime
    updated_at: datetime
