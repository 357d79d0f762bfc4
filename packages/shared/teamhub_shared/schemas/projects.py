from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from pydantic import Field

from .common import CamelModel, UpdateModel


class ProjectCreate(CamelModel):
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    settings: dict[str, Any] = Field(default_factory=dict)


class ProjectUpdate(UpdateModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    settings: Optional[dict[str, Any]] = None


class ProjectResponse(CamelModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    name: str
    description: Optional[str] = None
    settings: dict[str, Any]
    created_at: datetime
    updated_at: datetime
