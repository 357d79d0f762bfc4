"""Message model. Immutable once written; only hard delete."""

from datetime import datetime
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from teamhub_shared.schemas.common import MessageType

from .base import UUIDMixin, utcnow


class Message(UUIDMixin, SQLModel, table=True):
    __tablename__ = "messages"
    __table_args__ = (
        sa.Index("ix_messages_channel_created", "channel_id", "created_at", "id"),
    )

    channel_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("channels.id", ondelete="CASCADE"), nullable=False
        ),
    )
    user_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    content: str = Field(nullable=False)
    type: str = Field(default=MessageType.TEXT.value, nullable=False)  # TEXT | SYSTEM
    created_at: datetime = Field(
        default_factory=utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
