"""Channel and channel membership models."""

from datetime import datetime
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from teamhub_shared.schemas.common import MemberRole

from .base import TimestampMixin, UUIDMixin, utcnow


class Channel(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "channels"
    __table_args__ = (
        sa.UniqueConstraint("tenant_id", "direct_key", name="uq_channels_tenant_direct_key"),
        sa.Index("ix_channels_tenant_updated", "tenant_id", "updated_at"),
    )

    tenant_id: uuid.UUID = Field(foreign_key="tenants.id", nullable=False, index=True)
    name: str = Field(nullable=False)
    description: Optional[str] = None
    type: str = Field(nullable=False)  # PUBLIC | PRIVATE | DIRECT
    created_by: Optional[uuid.UUID] = Field(
        default=None,
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True
        ),
    )
    # DIRECT only: "<lower id>:<higher id>" of the two participants.
    direct_key: Optional[str] = Field(default=None, max_length=80)


def direct_key_for(a: uuid.UUID, b: uuid.UUID) -> str:
    first, second = sorted((str(a), str(b)))
    return f"{first}:{second}"


class ChannelMember(SQLModel, table=True):
    __tablename__ = "channel_members"

    channel_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("channels.id", ondelete="CASCADE"), primary_key=True
        ),
    )
    user_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True, index=True
        ),
    )
    role: str = Field(default=MemberRole.MEMBER.value, nullable=False)  # OWNER | MEMBER
    joined_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_type=sa.DateTime(timezone=True),
    )
    last_read_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
