"""Tenant schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from .common import CamelModel, TenantStatus, UpdateModel


class TenantResponse(CamelModel):
    id: uuid.UUID
    name: str
    plan: str
    status: TenantStatus
    settings: dict[str, Any]
    created_at: datetime
    updated_at: datetime


class TenantUpdateRequest(UpdateModel):
    """Tenant admins may rename the tenant and change settings keys."""
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    settings: Optional[dict[str, Any]] = None
