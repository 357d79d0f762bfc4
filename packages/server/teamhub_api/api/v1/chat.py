"""
Chat REST endpoints (tenant-scoped).

GET    /tenants/{tenantId}/chat/channels                         - Visible channels
POST   /tenants/{tenantId}/chat/channels                         - Create a channel
GET    /tenants/{tenantId}/chat/channels/available               - Public channels not yet joined
GET    /tenants/{tenantId}/chat/channels/{id}                    - Channel with members
DELETE /tenants/{tenantId}/chat/channels/{id}                    - Delete a channel
GET    /tenants/{tenantId}/chat/channels/{id}/messages           - Paged history (limit, before)
POST   /tenants/{tenantId}/chat/channels/{id}/messages           - Send a message
PATCH  /tenants/{tenantId}/chat/channels/{id}/read               - Mark as read
POST   /tenants/{tenantId}/chat/channels/{id}/join               - Join a public channel
POST   /tenants/{tenantId}/chat/channels/{id}/leave              - Leave a channel
POST   /tenants/{tenantId}/chat/channels/{id}/members            - Bulk-add members
DELETE /tenants/{tenantId}/chat/channels/{id}/members/{userId}   - Remove a member
GET    /tenants/{tenantId}/chat/direct-messages                  - My DMs
POST   /tenants/{tenantId}/chat/direct-messages                  - Create or fetch a DM
DELETE /tenants/{tenantId}/chat/messages/{id}                    - Delete a message
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from teamhub_api.core.auth import AuthenticatedUser, require_member, require_writer
from teamhub_api.core.database import get_session
from teamhub_api.services import channels as channel_service
from teamhub_api.services import messages as message_service
from teamhub_shared.schemas.chat import (
    ChannelCreateRequest,
    DirectMessageRequest,
    MembersAddRequest,
    MessageCreateRequest,
)
from teamhub_shared.schemas.common import ok

router = APIRouter()


# --- Channels ---


@router.get("/channels")
async def list_channels(
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    return ok(await channel_service.list_channels(auth, session))


@router.post("/channels", status_code=201)
async def create_channel(
    body: ChannelCreateRequest,
    auth: AuthenticatedUser = Depends(require_writer),
    session: AsyncSession = Depends(get_session),
):
    """Create a PUBLIC or PRIVATE channel; the creator becomes its OWNER."""
    return ok(await channel_service.create_channel(auth, body, session), "Channel created")


# Declared before /channels/{channel_id} so "available" is not parsed as an id.
@router.get("/channels/available")
async def list_available_channels(
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    return ok(await channel_service.list_available_channels(auth, session))


@router.get("/channels/{channel_id}")
async def get_channel(
    channel_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    return ok(await channel_service.get_channel(auth, channel_id, session))


@router.delete("/channels/{channel_id}")
async def delete_channel(
    channel_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    await channel_service.delete_channel(auth, channel_id, session)
    return ok(message="Channel deleted")


# --- Membership ---


@router.post("/channels/{channel_id}/join")
async def join_channel(
    channel_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    return ok(await channel_service.join_channel(auth, channel_id, session), "Joined channel")


@router.post("/channels/{channel_id}/leave")
async def leave_channel(
    channel_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    await channel_service.leave_channel(auth, channel_id, session)
    return ok(message="Left channel")


@router.post("/channels/{channel_id}/members")
async def add_members(
    channel_id: uuid.UUID,
    body: MembersAddRequest,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Bulk-add users to a PRIVATE channel (creator or admin)."""
    channel = await channel_service.add_members(auth, channel_id, body.user_ids, session)
    return ok(channel, "Members added")


@router.delete("/channels/{channel_id}/members/{user_id}")
async def remove_member(
    channel_id: uuid.UUID,
    user_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    await channel_service.remove_member(auth, channel_id, user_id, session)
    return ok(message="Member removed")


# --- Messages ---


@router.get("/channels/{channel_id}/messages")
async def get_messages(
    channel_id: uuid.UUID,
    limit: Optional[int] = Query(None, ge=1, description="Page size (capped server-side)"),
    before: Optional[str] = Query(None, description="Message id or ISO timestamp; returns older messages"),
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    page = await message_service.get_messages(auth, channel_id, session, limit=limit, before=before)
    return ok(page)


@router.post("/channels/{channel_id}/messages", status_code=201)
async def send_message(
    channel_id: uuid.UUID,
    body: MessageCreateRequest,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    return ok(await message_service.send_message(auth, channel_id, body, session))


@router.patch("/channels/{channel_id}/read")
async def mark_as_read(
    channel_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    return ok(await message_service.mark_as_read(auth, channel_id, session))


@router.delete("/messages/{message_id}")
async def delete_message(
    message_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    await message_service.delete_message(auth, message_id, session)
    return ok(message="Message deleted")


# --- Direct messages ---


@router.get("/direct-messages")
async def list_direct_messages(
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    return ok(await channel_service.list_direct_messages(auth, session))


@router.post("/direct-messages")
async def create_direct_message(
    body: DirectMessageRequest,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    """Create the DM with ``recipientId`` or return the existing one."""
    return ok(await channel_service.create_direct_message(auth, body.recipient_id, session))
