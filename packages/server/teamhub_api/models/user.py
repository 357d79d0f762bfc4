"""User model."""

from typing import Any
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from teamhub_shared.schemas.common import Role

from .base import JSONType, TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    tenant_id: uuid.UUID = Field(foreign_key="tenants.id", nullable=False, index=True)
    email: str = Field(nullable=False, unique=True, index=True)
    password_hash: str = Field(nullable=False)  # bcrypt
    role: str = Field(default=Role.MEMBER.value, nullable=False)
    # {first_name, last_name, avatar?, phone?}
    profile: dict[str, Any] = Field(
        default_factory=dict,
        sa_column=sa.Column(JSONType, nullable=False, server_default="{}"),
    )
    is_active: bool = Field(default=True, nullable=False)

    @property
    def display_name(self) -> str:
        profile = self.profile or {}
        name = " ".join(
            part for part in (profile.get("first_name"), profile.get("last_name")) if part
        )
        return name or "Someone"
