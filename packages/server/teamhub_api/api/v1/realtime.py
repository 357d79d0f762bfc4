"""
Realtime chat gateway.

WS /chat

Handshake: the access token is passed as ``?token=`` or as the first frame
``{"auth": {"token": "..."}}``. A bad token gets an ``auth:error`` frame and
close code 4001. Once authenticated the socket is placed in ``user:<id>`` and
one ``channel:<id>`` room per membership; from then on the server pushes
``{"event", "data"}`` frames. Inbound frames other than ``ping`` are ignored.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from sqlmodel import select

from teamhub_api.core.auth import authenticate_token
from teamhub_api.core.chat import manager
from teamhub_api.core.config import get_settings
from teamhub_api.core.database import get_session_context
from teamhub_api.core.errors import AppError
from teamhub_api.models.channel import ChannelMember
from teamhub_shared.schemas.realtime import WS_CLOSE_AUTH_FAILED, ChatEvent, channel_room

router = APIRouter()
logger = logging.getLogger(__name__)
settings = get_settings()


def _frame(event: ChatEvent, data: Optional[dict] = None) -> str:
    return json.dumps({"event": event.value, "data": data or {}})


async def _read_auth_frame(websocket: WebSocket) -> Optional[str]:
    """Wait for ``{"auth": {"token": ...}}`` as the first frame."""
    try:
        raw = await asyncio.wait_for(
            websocket.receive_text(), timeout=settings.ws_auth_timeout_seconds
        )
    except asyncio.TimeoutError:
        return None
    try:
        frame = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(frame, dict) or not isinstance(frame.get("auth"), dict):
        return None
    token = frame["auth"].get("token")
    return token if isinstance(token, str) else None


async def _reject(websocket: WebSocket, message: str) -> None:
    await websocket.send_text(_frame(ChatEvent.AUTH_ERROR, {"message": message}))
    await websocket.close(code=WS_CLOSE_AUTH_FAILED, reason="authentication_failed")


def _is_ping(raw: str) -> bool:
    if raw == "ping":
        return True
    try:
        frame = json.loads(raw)
    except ValueError:
        return False
    return isinstance(frame, dict) and (frame.get("event") == "ping" or frame.get("type") == "ping")


@router.websocket("/chat")
async def chat_gateway(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
):
    await websocket.accept()

    try:
        if not token:
            token = await _read_auth_frame(websocket)
        if not token:
            await _reject(websocket, "Authentication required")
            return

        try:
            async with get_session_context() as session:
                auth = await authenticate_token(token, session)
                result = await session.execute(
                    select(ChannelMember.channel_id).where(ChannelMember.user_id == auth.user_id)
                )
                channel_ids = [str(cid) for cid in result.scalars().all()]
        except AppError as exc:
            await _reject(websocket, exc.detail)
            return
    except WebSocketDisconnect:
        return

    info = await manager.connect(
        websocket,
        auth.user_id,
        auth.user.tenant_id,
        rooms=[channel_room(cid) for cid in channel_ids],
        cross_tenant=auth.is_super_admin,
    )
    try:
        await websocket.send_text(
            _frame(
                ChatEvent.CONNECTED,
                {
                    "userId": str(auth.user_id),
                    "tenantId": str(auth.user.tenant_id),
                    "channels": channel_ids,
                },
            )
        )
        while True:
            raw = await websocket.receive_text()
            if _is_ping(raw):
                await websocket.send_text(_frame(ChatEvent.PONG))
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket error: tenant=%s user=%s error=%s", info.tenant_id, info.user_id, e)
    finally:
        await manager.disconnect(info)
