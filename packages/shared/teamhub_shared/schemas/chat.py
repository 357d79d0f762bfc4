"""
Chat schemas: channels, memberships, direct messages and messages.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import Field

from .common import CamelModel, ChannelType, MemberRole, MessageType
from .users import UserSummary


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class ChannelCreateRequest(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    type: ChannelType = ChannelType.PUBLIC


class MembersAddRequest(CamelModel):
    user_ids: List[uuid.UUID] = Field(min_length=1, max_length=500)


class DirectMessageRequest(CamelModel):
    recipient_id: uuid.UUID


class MessageCreateRequest(CamelModel):
    content: str = Field(min_length=1, max_length=4000)
    type: MessageType = MessageType.TEXT


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class ChannelMemberResponse(CamelModel):
    channel_id: uuid.UUID
    user_id: uuid.UUID
    role: MemberRole
    joined_at: datetime
    last_read_at: Optional[datetime] = None
    user: Optional[UserSummary] = None


class ChannelResponse(CamelModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    name: str
    description: Optional[str] = None
    type: ChannelType
    created_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime
    member_count: int = 0
    message_count: int = 0
    unread_count: int = 0
    is_member: bool = False
    members: Optional[List[ChannelMemberResponse]] = None


class MessageResponse(CamelModel):
    id: uuid.UUID
    channel_id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    content: str
    type: MessageType
    created_at: datetime
    user: Optional[UserSummary] = None


class LastMessage(CamelModel):
    content: str
    created_at: datetime
    user: Optional[UserSummary] = None


class DirectMessageResponse(ChannelResponse):
    """A DIRECT channel as seen by one participant."""
    display_name: str
    other_user: Optional[UserSummary] = None
    last_message: Optional[LastMessage] = None


class CursorPagination(CamelModel):
    next_cursor: Optional[str] = None
    has_more: bool
    limit: int


class MessagePage(CamelModel):
    messages: List[MessageResponse]
    pagination: CursorPagination


class ReadMarkerResponse(CamelModel):
    channel_id: uuid.UUID
    last_read_at: datetime
