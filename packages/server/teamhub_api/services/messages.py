"""
Message service: send, page through history, delete, read markers.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamhub_api.core.auth import AuthenticatedUser
from teamhub_api.core.chat import manager
from teamhub_api.core.config import get_settings
from teamhub_api.core.errors import Forbidden, NotFound, ValidationFailed
from teamhub_api.models.base import utcnow
from teamhub_api.models.channel import Channel
from teamhub_api.models.message import Message
from teamhub_api.services.channels import (
    channel_capabilities,
    event_payload,
    get_channel_in_tenant,
    get_membership,
    to_message_response,
)
from teamhub_api.services.users import load_users
from teamhub_shared.schemas.chat import (
    CursorPagination,
    MessageCreateRequest,
    MessagePage,
    MessageResponse,
    ReadMarkerResponse,
)
from teamhub_shared.schemas.common import ChannelType, MessageType
from teamhub_shared.schemas.realtime import ChatEvent, channel_room

log = structlog.get_logger()
settings = get_settings()


async def send_message(
    auth: AuthenticatedUser,
    channel_id: uuid.UUID,
    req: MessageCreateRequest,
    session: AsyncSession,
) -> MessageResponse:
    channel = await get_channel_in_tenant(session, auth.tenant_id, channel_id)
    if req.type is not MessageType.TEXT:
        raise ValidationFailed("Only text messages can be sent", field="type")
    if await get_membership(session, channel.id, auth.user_id) is None:
        raise Forbidden("You must be a member of this channel to send messages")
    if not channel_capabilities(auth, channel).can_write:
        raise Forbidden("Write access required")

    content = req.content.strip()
    if not content:
        raise ValidationFailed("Message content cannot be empty", field="content")

    message = Message(
        channel_id=channel.id,
        user_id=auth.user_id,
        content=content,
        type=MessageType.TEXT.value,
    )
    session.add(message)
    channel.updated_at = utcnow()
    session.add(channel)
    await session.commit()

    log.info(
        "message.sent",
        message_id=str(message.id),
        channel_id=str(channel.id),
        user_id=str(auth.user_id),
    )
    response = to_message_response(message, auth.user)
    await manager.emit(
        channel.tenant_id, channel_room(channel.id), ChatEvent.MESSAGE_NEW.value, event_payload(response)
    )
    return response


def _can_read_history(auth: AuthenticatedUser, channel: Channel, is_member: bool) -> bool:
    if is_member:
        return True
    caps = channel_capabilities(auth, channel)
    if channel.type == ChannelType.PUBLIC.value:
        return caps.can_read
    if channel.type == ChannelType.PRIVATE.value:
        return caps.can_manage
    return False


async def _cursor_condition(session: AsyncSession, channel_id: uuid.UUID, before: str):
    """Translate a ``before`` cursor (message id or ISO timestamp) into a filter."""
    try:
        cursor_id = uuid.UUID(before)
    except ValueError:
        cursor_id = None

    if cursor_id is not None:
        cursor = await session.get(Message, cursor_id)
        if cursor is None or cursor.channel_id != channel_id:
            raise ValidationFailed("Unknown message cursor", field="before")
        return or_(
            Message.created_at < cursor.created_at,
            and_(Message.created_at == cursor.created_at, Message.id < cursor.id),
        )

    try:
        boundary = datetime.fromisoformat(before.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationFailed("Cursor must be a message id or an ISO timestamp", field="before")
    if boundary.tzinfo is None:
        boundary = boundary.replace(tzinfo=timezone.utc)
    return Message.created_at < boundary.astimezone(timezone.utc)


async def get_messages(
    auth: AuthenticatedUser,
    channel_id: uuid.UUID,
    session: AsyncSession,
    *,
    limit: Optional[int] = None,
    before: Optional[str] = None,
) -> MessagePage:
    """
    Reverse-chronological page of messages.

    Ordering is (created_at, id) descending, so messages sharing a timestamp
    still page without overlap or gaps.
    """
    channel = await get_channel_in_tenant(session, auth.tenant_id, channel_id)
    is_member = await get_membership(session, channel.id, auth.user_id) is not None
    if not _can_read_history(auth, channel, is_member):
        raise Forbidden("You do not have access to this channel")

    limit = min(limit or settings.messages_page_size, settings.messages_max_page_size)

    stmt = select(Message).where(Message.channel_id == channel.id)
    if before:
        stmt = stmt.where(await _cursor_condition(session, channel.id, before))
    stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit + 1)

    rows = list((await session.execute(stmt)).scalars().all())
    has_more = len(rows) > limit
    rows = rows[:limit]

    authors = await load_users((m.user_id for m in rows), session)
    return MessagePage(
        messages=[to_message_response(m, authors.get(m.user_id)) for m in rows],
        pagination=CursorPagination(
            next_cursor=str(rows[-1].id) if has_more and rows else None,
            has_more=has_more,
            limit=limit,
        ),
    )


async def delete_message(
    auth: AuthenticatedUser, message_id: uuid.UUID, session: AsyncSession
) -> None:
    message = await session.get(Message, message_id)
    if message is None:
        raise NotFound("Message not found")
    channel = await session.get(Channel, message.channel_id)
    if channel is None or channel.tenant_id != auth.tenant_id:
        raise NotFound("Message not found")

    if message.user_id != auth.user_id and not channel_capabilities(auth, channel).can_manage:
        raise Forbidden("Only the author or a channel manager can delete this message")

    await session.delete(message)
    await session.commit()

    log.info("message.deleted", message_id=str(message_id), channel_id=str(channel.id), by=str(auth.user_id))
    await manager.emit(
        channel.tenant_id,
        channel_room(channel.id),
        ChatEvent.MESSAGE_DELETED.value,
        {"id": str(message_id), "channelId": str(channel.id)},
    )


async def mark_as_read(
    auth: AuthenticatedUser, channel_id: uuid.UUID, session: AsyncSession
) -> ReadMarkerResponse:
    channel = await get_channel_in_tenant(session, auth.tenant_id, channel_id)
    membership = await get_membership(session, channel.id, auth.user_id)
    if membership is None:
        raise NotFound("You are not a member of this channel")

    membership.last_read_at = utcnow()
    session.add(membership)
    await session.flush()
    return ReadMarkerResponse(channel_id=channel.id, last_read_at=membership.last_read_at)
