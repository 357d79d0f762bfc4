"""Tenant model: the isolation boundary that owns users, channels and projects."""

from typing import Any

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from teamhub_shared.schemas.common import TenantStatus

from .base import JSONType, TimestampMixin, UUIDMixin


class Tenant(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tenants"

    name: str = Field(nullable=False)
    plan: str = Field(default="free", nullable=False)
    status: str = Field(default=TenantStatus.TRIAL.value, nullable=False)  # ACTIVE | SUSPENDED | TRIAL
    settings: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=sa.Column(JSONType, nullable=False, server_default="{}"),
    )
