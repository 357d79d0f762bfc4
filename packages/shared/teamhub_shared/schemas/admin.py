"""Cross-tenant administration schemas (SUPER_ADMIN surface)."""

from __future__ import annotations

import uuid
from typing import Any, Optional

from pydantic import EmailStr, Field

from .common import CamelModel, Role, TenantStatus, UpdateModel
from .tenants import TenantResponse
from .users import UserProfileUpdate, UserResponse


class AdminTenantCreate(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    plan: str = Field(default="free", min_length=1, max_length=50)
    status: TenantStatus = TenantStatus.ACTIVE


class AdminTenantUpdate(UpdateModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    plan: Optional[str] = Field(default=None, min_length=1, max_length=50)
    status: Optional[TenantStatus] = None
    settings: Optional[dict[str, Any]] = None


class AdminUserCreate(CamelModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    role: Role = Role.MEMBER
    tenant_id: uuid.UUID


class AdminUserUpdate(UpdateModel):
    email: Optional[EmailStr] = None
    role: Optional[Role] = None
    is_active: Optional[bool] = None
    profile: Optional[UserProfileUpdate] = None


class TenantCounts(CamelModel):
    users: int = 0
    projects: int = 0
    channels: int = 0


class AdminTenantResponse(TenantResponse):
    counts: TenantCounts


class TenantRef(CamelModel):
    id: uuid.UUID
    name: str


class AdminUserResponse(UserResponse):
    tenant: Optional[TenantRef] = None


class SystemAnalytics(CamelModel):
    total_users: int
    total_tenants: int
    total_channels: int
    total_messages: int
