"""
Channel service: channels, memberships and direct messages.

Visibility rules:
- PUBLIC channels are visible to every user of the tenant
- PRIVATE channels are visible to members, the creator and tenant admins
- DIRECT channels are visible to their two participants only

Every mutation commits before realtime events are emitted.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog
from sqlalchemy import and_, delete, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamhub_api.core.auth import AuthenticatedUser
from teamhub_api.core.chat import manager
from teamhub_api.core.errors import Forbidden, NotFound, ValidationFailed
from teamhub_api.core.permissions import Capabilities
from teamhub_api.models.base import utcnow
from teamhub_api.models.channel import Channel, ChannelMember, direct_key_for
from teamhub_api.models.message import Message
from teamhub_api.models.user import User
from teamhub_api.services.users import load_users, to_user_summary
from teamhub_shared.schemas.chat import (
    ChannelCreateRequest,
    ChannelMemberResponse,
    ChannelResponse,
    DirectMessageResponse,
    LastMessage,
    MessageResponse,
)
from teamhub_shared.schemas.common import ChannelType, MemberRole, MessageType
from teamhub_shared.schemas.realtime import ChatEvent, channel_room, user_room

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Lookups and access helpers
# ---------------------------------------------------------------------------

async def get_channel_in_tenant(
    session: AsyncSession, tenant_id: uuid.UUID, channel_id: uuid.UUID
) -> Channel:
    channel = await session.get(Channel, channel_id)
    if channel is None or channel.tenant_id != tenant_id:
        raise NotFound("Channel not found")
    return channel


async def get_membership(
    session: AsyncSession, channel_id: uuid.UUID, user_id: uuid.UUID
) -> Optional[ChannelMember]:
    return await session.get(ChannelMember, (channel_id, user_id))


def channel_capabilities(auth: AuthenticatedUser, channel: Channel) -> Capabilities:
    return auth.capabilities(
        channel.tenant_id, is_creator=channel.created_by == auth.user_id
    )


def can_see(auth: AuthenticatedUser, channel: Channel, is_member: bool) -> bool:
    caps = channel_capabilities(auth, channel)
    if channel.type == ChannelType.DIRECT.value:
        return is_member
    if channel.type == ChannelType.PUBLIC.value:
        return caps.can_read
    return is_member or caps.can_manage


async def get_visible_channel(
    auth: AuthenticatedUser, channel_id: uuid.UUID, session: AsyncSession
) -> tuple[Channel, Optional[ChannelMember]]:
    """Channel plus the caller's membership; invisible channels are NotFound."""
    channel = await get_channel_in_tenant(session, auth.tenant_id, channel_id)
    membership = await get_membership(session, channel.id, auth.user_id)
    if not can_see(auth, channel, membership is not None):
        raise NotFound("Channel not found")
    return channel, membership


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def event_payload(model) -> dict:
    return model.model_dump(mode="json", by_alias=True)


def to_message_response(message: Message, author: Optional[User]) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        channel_id=message.channel_id,
        user_id=message.user_id,
        content=message.content,
        type=message.type,
        created_at=message.created_at,
        user=to_user_summary(author),
    )


async def _channel_stats(
    session: AsyncSession, channel_ids: list[uuid.UUID], user_id: uuid.UUID
) -> tuple[dict, dict, dict, set]:
    """(member counts, message counts, unread counts, joined ids) for a batch of channels."""
    if not channel_ids:
        return {}, {}, {}, set()

    members = await session.execute(
        select(ChannelMember.channel_id, func.count())
        .where(ChannelMember.channel_id.in_(channel_ids))
        .group_by(ChannelMember.channel_id)
    )
    messages = await session.execute(
        select(Message.channel_id, func.count())
        .where(Message.channel_id.in_(channel_ids))
        .group_by(Message.channel_id)
    )
    unread = await session.execute(
        select(Message.channel_id, func.count())
        .join(
            ChannelMember,
            and_(
                ChannelMember.channel_id == Message.channel_id,
                ChannelMember.user_id == user_id,
            ),
        )
        .where(
            Message.channel_id.in_(channel_ids),
            Message.user_id != user_id,
            or_(
                ChannelMember.last_read_at.is_(None),
                Message.created_at > ChannelMember.last_read_at,
            ),
        )
        .group_by(Message.channel_id)
    )
    joined = await session.execute(
        select(ChannelMember.channel_id).where(
            ChannelMember.channel_id.in_(channel_ids),
            ChannelMember.user_id == user_id,
        )
    )
    return (
        dict(members.all()),
        dict(messages.all()),
        dict(unread.all()),
        set(joined.scalars().all()),
    )


async def _to_channel_responses(
    session: AsyncSession, channels: list[Channel], user_id: uuid.UUID
) -> list[ChannelResponse]:
    member_counts, message_counts, unread_counts, joined = await _channel_stats(
        session, [c.id for c in channels], user_id
    )
    return [
        ChannelResponse(
            **channel.model_dump(),
            member_count=member_counts.get(channel.id, 0),
            message_count=message_counts.get(channel.id, 0),
            unread_count=unread_counts.get(channel.id, 0),
            is_member=channel.id in joined,
        )
        for channel in channels
    ]


async def _members_of(session: AsyncSession, channel_id: uuid.UUID) -> list[ChannelMemberResponse]:
    result = await session.execute(
        select(ChannelMember, User)
        .join(User, User.id == ChannelMember.user_id)
        .where(ChannelMember.channel_id == channel_id)
        .order_by(ChannelMember.joined_at, ChannelMember.user_id)
    )
    return [
        ChannelMemberResponse(
            channel_id=member.channel_id,
            user_id=member.user_id,
            role=member.role,
            joined_at=member.joined_at,
            last_read_at=member.last_read_at,
            user=to_user_summary(user),
        )
        for member, user in result.all()
    ]


async def channel_detail(
    session: AsyncSession, channel: Channel, user_id: uuid.UUID
) -> ChannelResponse:
    [response] = await _to_channel_responses(session, [channel], user_id)
    response.members = await _members_of(session, channel.id)
    return response


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def _my_channel_ids(user_id: uuid.UUID):
    return select(ChannelMember.channel_id).where(ChannelMember.user_id == user_id)


async def list_channels(auth: AuthenticatedUser, session: AsyncSession) -> list[ChannelResponse]:
    """Non-DIRECT channels the caller can see, most recently active first."""
    stmt = select(Channel).where(
        Channel.tenant_id == auth.tenant_id,
        Channel.type != ChannelType.DIRECT.value,
    )
    if not auth.capabilities().can_manage:
        stmt = stmt.where(
            or_(
                Channel.type == ChannelType.PUBLIC.value,
                Channel.created_by == auth.user_id,
                Channel.id.in_(_my_channel_ids(auth.user_id)),
            )
        )
    result = await session.execute(stmt.order_by(Channel.updated_at.desc(), Channel.id.desc()))
    return await _to_channel_responses(session, list(result.scalars().all()), auth.user_id)


async def list_available_channels(
    auth: AuthenticatedUser, session: AsyncSession
) -> list[ChannelResponse]:
    """PUBLIC channels the caller has not joined yet."""
    result = await session.execute(
        select(Channel)
        .where(
            Channel.tenant_id == auth.tenant_id,
            Channel.type == ChannelType.PUBLIC.value,
            Channel.id.not_in(_my_channel_ids(auth.user_id)),
        )
        .order_by(Channel.name, Channel.id)
    )
    return await _to_channel_responses(session, list(result.scalars().all()), auth.user_id)


async def get_channel(
    auth: AuthenticatedUser, channel_id: uuid.UUID, session: AsyncSession
) -> ChannelResponse:
    channel, _ = await get_visible_channel(auth, channel_id, session)
    return await channel_detail(session, channel, auth.user_id)


# ---------------------------------------------------------------------------
# Channel lifecycle
# ---------------------------------------------------------------------------

async def create_channel(
    auth: AuthenticatedUser, req: ChannelCreateRequest, session: AsyncSession
) -> ChannelResponse:
    if req.type is ChannelType.DIRECT:
        raise ValidationFailed("Direct messages are created via the direct-messages endpoint", field="type")
    if not auth.capabilities().can_write:
        raise Forbidden("Write access required")

    channel = Channel(
        tenant_id=auth.tenant_id,
        name=req.name.strip(),
        description=req.description,
        type=req.type.value,
        created_by=auth.user_id,
    )
    session.add(channel)
    await session.flush()
    session.add(ChannelMember(channel_id=channel.id, user_id=auth.user_id, role=MemberRole.OWNER.value))
    await session.commit()

    log.info(
        "channel.created",
        channel_id=str(channel.id),
        tenant_id=str(auth.tenant_id),
        user_id=str(auth.user_id),
        type=channel.type,
    )
    await manager.join(auth.tenant_id, auth.user_id, channel_room(channel.id))
    return await channel_detail(session, channel, auth.user_id)


async def delete_channel(
    auth: AuthenticatedUser, channel_id: uuid.UUID, session: AsyncSession
) -> None:
    channel, _ = await get_visible_channel(auth, channel_id, session)
    if not channel_capabilities(auth, channel).can_manage:
        raise Forbidden("Only the channel creator or an administrator can delete this channel")

    member_ids = (
        await session.execute(
            select(ChannelMember.user_id).where(ChannelMember.channel_id == channel.id)
        )
    ).scalars().all()

    await purge_channels(session, [channel.id])
    await session.commit()

    log.info("channel.deleted", channel_id=str(channel.id), tenant_id=str(channel.tenant_id), by=str(auth.user_id))
    room = channel_room(channel.id)
    await manager.emit(channel.tenant_id, room, ChatEvent.CHANNEL_DELETED.value, {"channelId": str(channel.id)})
    for member_id in member_ids:
        await manager.leave(channel.tenant_id, member_id, room)


async def purge_channels(session: AsyncSession, channel_ids: list[uuid.UUID]) -> None:
    """Delete channels together with their messages and memberships."""
    if not channel_ids:
        return
    await session.execute(delete(Message).where(Message.channel_id.in_(channel_ids)))
    await session.execute(delete(ChannelMember).where(ChannelMember.channel_id.in_(channel_ids)))
    await session.execute(delete(Channel).where(Channel.id.in_(channel_ids)))


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------

async def post_system_message(session: AsyncSession, channel: Channel, actor: User, content: str) -> Message:
    message = Message(
        channel_id=channel.id,
        user_id=actor.id,
        content=content,
        type=MessageType.SYSTEM.value,
    )
    session.add(message)
    channel.updated_at = utcnow()
    session.add(channel)
    await session.flush()
    return message


async def _insert_member(
    session: AsyncSession, channel_id: uuid.UUID, user_id: uuid.UUID, role: MemberRole = MemberRole.MEMBER
) -> bool:
    """Insert a membership. False when a concurrent request already added it."""
    try:
        async with session.begin_nested():
            session.add(ChannelMember(channel_id=channel_id, user_id=user_id, role=role.value))
    except IntegrityError:
        return False
    return True


async def join_channel(
    auth: AuthenticatedUser, channel_id: uuid.UUID, session: AsyncSession
) -> ChannelResponse:
    """Join a PUBLIC channel. Joining twice is a no-op."""
    channel, membership = await get_visible_channel(auth, channel_id, session)
    if channel.type != ChannelType.PUBLIC.value:
        raise Forbidden("Only public channels can be joined")
    if membership is not None:
        return await channel_detail(session, channel, auth.user_id)

    if not await _insert_member(session, channel.id, auth.user_id):
        return await channel_detail(session, channel, auth.user_id)

    user = auth.user
    notice = await post_system_message(session, channel, user, f"{user.display_name} joined the channel")
    await session.commit()

    log.info("channel.joined", channel_id=str(channel.id), user_id=str(auth.user_id))
    room = channel_room(channel.id)
    await manager.join(channel.tenant_id, auth.user_id, room)
    await manager.emit(
        channel.tenant_id,
        room,
        ChatEvent.MEMBER_JOINED.value,
        {"channelId": str(channel.id), "user": event_payload(to_user_summary(user))},
    )
    await manager.emit(
        channel.tenant_id, room, ChatEvent.MESSAGE_NEW.value, event_payload(to_message_response(notice, user))
    )
    return await channel_detail(session, channel, auth.user_id)


async def leave_channel(
    auth: AuthenticatedUser, channel_id: uuid.UUID, session: AsyncSession
) -> None:
    channel = await get_channel_in_tenant(session, auth.tenant_id, channel_id)
    membership = await get_membership(session, channel.id, auth.user_id)
    if membership is None:
        raise NotFound("You are not a member of this channel")
    if channel.type == ChannelType.DIRECT.value:
        raise Forbidden("Direct message channels cannot be left")

    await session.delete(membership)
    user = auth.user
    notice = await post_system_message(session, channel, user, f"{user.display_name} left the channel")
    await session.commit()

    log.info("channel.left", channel_id=str(channel.id), user_id=str(auth.user_id))
    room = channel_room(channel.id)
    await manager.emit(
        channel.tenant_id,
        room,
        ChatEvent.MEMBER_LEFT.value,
        {"channelId": str(channel.id), "userId": str(auth.user_id)},
    )
    await manager.emit(
        channel.tenant_id, room, ChatEvent.MESSAGE_NEW.value, event_payload(to_message_response(notice, user))
    )
    await manager.leave(channel.tenant_id, auth.user_id, room)


async def _managed_private_channel(
    auth: AuthenticatedUser, channel_id: uuid.UUID, session: AsyncSession
) -> Channel:
    channel, _ = await get_visible_channel(auth, channel_id, session)
    if channel.type != ChannelType.PRIVATE.value:
        raise ValidationFailed("Members can only be managed on private channels")
    if not channel_capabilities(auth, channel).can_manage:
        raise Forbidden("Only the channel creator or an administrator can manage members")
    return channel


async def add_members(
    auth: AuthenticatedUser,
    channel_id: uuid.UUID,
    user_ids: list[uuid.UUID],
    session: AsyncSession,
) -> ChannelResponse:
    channel = await _managed_private_channel(auth, channel_id, session)
    wanted = set(user_ids)

    result = await session.execute(
        select(User).where(
            User.id.in_(wanted),
            User.tenant_id == channel.tenant_id,
            User.is_active == True,  # noqa: E712
        )
    )
    users = {u.id: u for u in result.scalars().all()}
    if set(users) != wanted:
        raise Forbidden("All users must be active members of this tenant")

    existing = set(
        (
            await session.execute(
                select(ChannelMember.user_id).where(
                    ChannelMember.channel_id == channel.id,
                    ChannelMember.user_id.in_(wanted),
                )
            )
        ).scalars().all()
    )
    added = [
        uid for uid in sorted(wanted - existing, key=str)
        if await _insert_member(session, channel.id, uid)
    ]
    await session.commit()

    log.info("channel.members_added", channel_id=str(channel.id), count=len(added), by=str(auth.user_id))
    room = channel_room(channel.id)
    for uid in added:
        await manager.join(channel.tenant_id, uid, room)
        await manager.emit(
            channel.tenant_id,
            room,
            ChatEvent.MEMBER_ADDED.value,
            {"channelId": str(channel.id), "user": event_payload(to_user_summary(users[uid]))},
        )
    return await channel_detail(session, channel, auth.user_id)


async def remove_member(
    auth: AuthenticatedUser,
    channel_id: uuid.UUID,
    user_id: uuid.UUID,
    session: AsyncSession,
) -> None:
    channel = await _managed_private_channel(auth, channel_id, session)
    if channel.created_by == user_id:
        raise Forbidden("The channel creator cannot be removed")
    membership = await get_membership(session, channel.id, user_id)
    if membership is None:
        raise NotFound("User is not a member of this channel")

    await session.delete(membership)
    await session.commit()

    log.info("channel.member_removed", channel_id=str(channel.id), user_id=str(user_id), by=str(auth.user_id))
    room = channel_room(channel.id)
    await manager.emit(
        channel.tenant_id,
        room,
        ChatEvent.MEMBER_REMOVED.value,
        {"channelId": str(channel.id), "userId": str(user_id)},
    )
    await manager.leave(channel.tenant_id, user_id, room)


# ---------------------------------------------------------------------------
# Direct messages
# ---------------------------------------------------------------------------

async def _find_direct(session: AsyncSession, tenant_id: uuid.UUID, key: str) -> Optional[Channel]:
    result = await session.execute(
        select(Channel).where(
            Channel.tenant_id == tenant_id,
            Channel.type == ChannelType.DIRECT.value,
            Channel.direct_key == key,
        )
    )
    return result.scalar_one_or_none()


async def _direct_response(
    session: AsyncSession, channel: Channel, viewer_id: uuid.UUID, other: Optional[User]
) -> DirectMessageResponse:
    [base] = await _to_channel_responses(session, [channel], viewer_id)

    last = (
        await session.execute(
            select(Message)
            .where(Message.channel_id == channel.id, Message.type != MessageType.SYSTEM.value)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(1)
        )
    ).scalar_one_or_none()
    last_message = None
    if last is not None:
        authors = await load_users([last.user_id], session)
        last_message = LastMessage(
            content=last.content,
            created_at=last.created_at,
            user=to_user_summary(authors.get(last.user_id)),
        )

    return DirectMessageResponse(
        **base.model_dump(),
        display_name=other.display_name if other else "Unknown user",
        other_user=to_user_summary(other),
        last_message=last_message,
    )


async def create_direct_message(
    auth: AuthenticatedUser, recipient_id: uuid.UUID, session: AsyncSession
) -> DirectMessageResponse:
    """Create the DM between caller and recipient, or return the existing one."""
    if recipient_id == auth.user_id:
        raise ValidationFailed("You cannot start a direct message with yourself", field="recipientId")
    if not auth.capabilities().can_write:
        raise Forbidden("Write access required")

    recipient = await session.get(User, recipient_id)
    if recipient is None or recipient.tenant_id != auth.tenant_id or not recipient.is_active:
        raise Forbidden("Cannot start a direct message with a user outside this tenant")

    key = direct_key_for(auth.user_id, recipient.id)
    channel = await _find_direct(session, auth.tenant_id, key)
    if channel is None:
        channel = Channel(
            tenant_id=auth.tenant_id,
            name=f"DM-{key}",
            type=ChannelType.DIRECT.value,
            created_by=auth.user_id,
            direct_key=key,
        )
        try:
            async with session.begin_nested():
                session.add(channel)
                await session.flush()
                session.add(ChannelMember(channel_id=channel.id, user_id=auth.user_id))
                session.add(ChannelMember(channel_id=channel.id, user_id=recipient.id))
        except IntegrityError:
            # Created concurrently by the other participant
            channel = await _find_direct(session, auth.tenant_id, key)
            if channel is None:
                raise
        else:
            await session.commit()
            log.info("channel.direct_created", channel_id=str(channel.id), tenant_id=str(auth.tenant_id))
            room = channel_room(channel.id)
            await manager.join(auth.tenant_id, auth.user_id, room)
            await manager.join(auth.tenant_id, recipient.id, room)
            await manager.emit(
                auth.tenant_id,
                user_room(recipient.id),
                ChatEvent.DIRECT_MESSAGE_CREATED.value,
                event_payload(await _direct_response(session, channel, recipient.id, auth.user)),
            )

    return await _direct_response(session, channel, auth.user_id, recipient)


async def list_direct_messages(
    auth: AuthenticatedUser, session: AsyncSession
) -> list[DirectMessageResponse]:
    result = await session.execute(
        select(Channel)
        .where(
            Channel.tenant_id == auth.tenant_id,
            Channel.type == ChannelType.DIRECT.value,
            Channel.id.in_(_my_channel_ids(auth.user_id)),
        )
        .order_by(Channel.updated_at.desc(), Channel.id.desc())
    )
    channels = list(result.scalars().all())
    if not channels:
        return []

    others = await session.execute(
        select(ChannelMember.channel_id, User)
        .join(User, User.id == ChannelMember.user_id)
        .where(
            ChannelMember.channel_id.in_([c.id for c in channels]),
            ChannelMember.user_id != auth.user_id,
        )
    )
    other_by_channel = {channel_id: user for channel_id, user in others.all()}

    return [
        await _direct_response(session, channel, auth.user_id, other_by_channel.get(channel.id))
        for channel in channels
    ]


async def detach_user_from_channels(session: AsyncSession, user_id: uuid.UUID) -> None:
    """Remove every trace of a user from chat before a hard delete."""
    direct_ids = (
        await session.execute(
            select(Channel.id).where(
                Channel.type == ChannelType.DIRECT.value,
                Channel.id.in_(_my_channel_ids(user_id)),
            )
        )
    ).scalars().all()
    await purge_channels(session, list(direct_ids))
    await session.execute(delete(Message).where(Message.user_id == user_id))
    await session.execute(delete(ChannelMember).where(ChannelMember.user_id == user_id))
    await session.execute(
        update(Channel).where(Channel.created_by == user_id).values(created_by=None)
    )
