"""
Realtime chat connection manager.

One ``ConnectionManager`` owns every live socket in the process:

- connection id -> {websocket, user, tenant, rooms}
- rooms are ``user:<id>`` and ``channel:<id>``
- operations (emit / join / leave / close) are published per tenant on Redis
  so every process applies them to its own sockets; with the in-memory broker
  they are applied directly.

Sockets of super administrators are cross-tenant: they are not indexed under
their home tenant but receive the operations of every tenant (a pattern
subscription on Redis), filtered by the rooms they are in.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any, Iterable, Optional
from uuid import UUID

from fastapi import WebSocket

from teamhub_api.core.config import get_settings
from teamhub_api.core.redis import get_redis
from teamhub_shared.schemas.realtime import WS_CLOSE_SESSION_ENDED, user_room

logger = logging.getLogger(__name__)

# Redis channel prefix, one pub/sub channel per tenant
REDIS_CHAT_CHANNEL_PREFIX = "teamhub:chat:"


class ConnectionInfo:
    """Tracks a single WebSocket connection's metadata."""

    __slots__ = ("id", "websocket", "user_id", "tenant_id", "rooms", "cross_tenant")

    def __init__(
        self,
        websocket: WebSocket,
        user_id: UUID,
        tenant_id: UUID,
        rooms: Iterable[str] = (),
        cross_tenant: bool = False,
    ):
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.user_id = user_id
        self.tenant_id = tenant_id
        self.rooms: set[str] = set(rooms)
        self.cross_tenant = cross_tenant


class ConnectionManager:
    """
    Room-based fan-out over WebSocket connections.

    Local connections are tracked in-memory. With the ``redis`` broker every
    operation goes through the tenant's pub/sub channel, including ones that
    originate in this process, so all processes see the same ordering.
    """

    def __init__(self, broker: Optional[str] = None) -> None:
        self.broker = broker or get_settings().realtime_broker
        # connection id -> ConnectionInfo
        self._connections: dict[str, ConnectionInfo] = {}
        # tenant_id_str -> connection ids
        self._by_tenant: dict[str, set[str]] = {}
        # connection ids of cross-tenant (super admin) sockets
        self._cross_tenant: set[str] = set()
        # tenant_id_str -> asyncio.Task (Redis listener)
        self._redis_tasks: dict[str, asyncio.Task] = {}
        # pattern listener serving the cross-tenant sockets
        self._pattern_task: Optional[asyncio.Task] = None

    @property
    def connections(self) -> dict[str, ConnectionInfo]:
        return self._connections

    def connections_for_tenant(self, tenant_id: UUID) -> list[ConnectionInfo]:
        ids = self._by_tenant.get(str(tenant_id), set())
        return [self._connections[cid] for cid in ids if cid in self._connections]

    def cross_tenant_connections(self) -> list[ConnectionInfo]:
        return [self._connections[cid] for cid in self._cross_tenant if cid in self._connections]

    def reset(self) -> None:
        """Forget every connection and stop the listeners."""
        for task in [*self._redis_tasks.values(), self._pattern_task]:
            if task:
                task.cancel()
        self._connections.clear()
        self._by_tenant.clear()
        self._cross_tenant.clear()
        self._redis_tasks.clear()
        self._pattern_task = None

    async def connect(
        self,
        websocket: WebSocket,
        user_id: UUID,
        tenant_id: UUID,
        rooms: Iterable[str] = (),
        cross_tenant: bool = False,
    ) -> ConnectionInfo:
        """Register an accepted, authenticated socket and join its rooms."""
        tenant_str = str(tenant_id)
        info = ConnectionInfo(websocket, user_id, tenant_id, rooms, cross_tenant)
        info.rooms.add(user_room(user_id))
        self._connections[info.id] = info

        if cross_tenant:
            self._cross_tenant.add(info.id)
            if self.broker == "redis" and self._pattern_task is None:
                self._pattern_task = asyncio.create_task(self._listen_redis_pattern())
        else:
            if tenant_str not in self._by_tenant:
                self._by_tenant[tenant_str] = set()
                if self.broker == "redis":
                    self._redis_tasks[tenant_str] = asyncio.create_task(
                        self._listen_redis(tenant_str)
                    )
            self._by_tenant[tenant_str].add(info.id)

        logger.info(
            "WebSocket connected: tenant=%s user=%s rooms=%d cross_tenant=%s total=%d",
            tenant_str,
            user_id,
            len(info.rooms),
            cross_tenant,
            len(self._connections),
        )
        return info

    async def disconnect(self, info: ConnectionInfo) -> None:
        """Remove a connection and clean up."""
        tenant_str = str(info.tenant_id)
        self._connections.pop(info.id, None)

        if info.cross_tenant:
            self._cross_tenant.discard(info.id)
            if not self._cross_tenant and self._pattern_task is not None:
                self._pattern_task.cancel()
                self._pattern_task = None

        ids = self._by_tenant.get(tenant_str)
        if ids is not None:
            ids.discard(info.id)
            if not ids:
                # No more connections for this tenant
                task = self._redis_tasks.pop(tenant_str, None)
                if task:
                    task.cancel()
                del self._by_tenant[tenant_str]

        logger.info("WebSocket disconnected: tenant=%s user=%s", tenant_str, info.user_id)

    # --- Public operations (broker-routed) ---

    async def emit(self, tenant_id: UUID, room: str, event: str, data: dict[str, Any]) -> None:
        """Send ``{"event", "data"}`` to every socket in ``room``."""
        await self._dispatch(tenant_id, {"op": "emit", "room": room, "event": event, "data": data})

    async def join(self, tenant_id: UUID, user_id: UUID, room: str) -> None:
        """Add ``room`` to every live connection of ``user_id``."""
        await self._dispatch(tenant_id, {"op": "join", "user_id": str(user_id), "room": room})

    async def leave(self, tenant_id: UUID, user_id: UUID, room: str) -> None:
        await self._dispatch(tenant_id, {"op": "leave", "user_id": str(user_id), "room": room})

    async def close_user(self, tenant_id: UUID, user_id: UUID, reason: str = "session_ended") -> None:
        """Close every socket of a deactivated or deleted user."""
        await self._dispatch(
            tenant_id, {"op": "close", "user_id": str(user_id), "reason": reason}
        )

    async def close_tenant(self, tenant_id: UUID, reason: str = "tenant_deleted") -> None:
        await self._dispatch(tenant_id, {"op": "close", "user_id": None, "reason": reason})

    async def _dispatch(self, tenant_id: UUID, op: dict[str, Any]) -> None:
        if self.broker == "redis":
            await self.publish(tenant_id, op)
        else:
            targets = self.connections_for_tenant(tenant_id) + self.cross_tenant_connections()
            await self._apply(str(tenant_id), op, targets)

    async def publish(self, tenant_id: UUID, op: dict[str, Any]) -> None:
        """Publish an operation to Redis for cross-process delivery."""
        redis = await get_redis()
        channel = f"{REDIS_CHAT_CHANNEL_PREFIX}{tenant_id}"
        await redis.publish(channel, json.dumps(op))

    # --- Local application ---

    async def _apply(self, tenant_str: str, op: dict[str, Any], targets: list[ConnectionInfo]) -> None:
        """Apply one operation of ``tenant_str`` to the candidate connections."""
        kind = op.get("op")
        if kind == "emit":
            await self._send_to_room(targets, op["room"], {"event": op["event"], "data": op["data"]})
        elif kind in ("join", "leave"):
            for info in _of_user(targets, op["user_id"]):
                if kind == "join":
                    info.rooms.add(op["room"])
                else:
                    info.rooms.discard(op["room"])
        elif kind == "close":
            if op.get("user_id"):
                doomed = _of_user(targets, op["user_id"])
            else:
                # Only sockets whose home is the tenant; visitors stay connected
                doomed = [info for info in targets if str(info.tenant_id) == tenant_str]
            for info in doomed:
                try:
                    await info.websocket.close(code=WS_CLOSE_SESSION_ENDED, reason=op.get("reason", ""))
                except Exception:
                    logger.debug("Close failed for connection %s", info.id)
                await self.disconnect(info)
        else:
            logger.warning("Unknown chat operation %r for tenant %s", kind, tenant_str)

    async def _send_to_room(self, targets: list[ConnectionInfo], room: str, frame: dict[str, Any]) -> None:
        msg_text = json.dumps(frame)

        dead_connections = []
        for info in targets:
            if room not in info.rooms:
                continue
            try:
                await info.websocket.send_text(msg_text)
            except Exception:
                dead_connections.append(info)

        # Clean up dead connections
        for dead in dead_connections:
            await self.disconnect(dead)

    # --- Redis Pub/Sub Listeners ---

    async def _listen_redis(self, tenant_str: str) -> None:
        """Listen to the tenant's Redis channel and apply operations locally."""
        redis = await get_redis()
        pubsub = redis.pubsub()
        channel = f"{REDIS_CHAT_CHANNEL_PREFIX}{tenant_str}"
        await pubsub.subscribe(channel)

        try:
            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                op = _decode(message, channel)
                if op is not None:
                    await self._apply(tenant_str, op, self.connections_for_tenant(UUID(tenant_str)))
        except asyncio.CancelledError:
            logger.info("Redis WS listener cancelled for tenant %s", tenant_str)
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

    async def _listen_redis_pattern(self) -> None:
        """Listen to every tenant's channel on behalf of cross-tenant sockets."""
        redis = await get_redis()
        pubsub = redis.pubsub()
        pattern = f"{REDIS_CHAT_CHANNEL_PREFIX}*"
        await pubsub.psubscribe(pattern)

        try:
            async for message in pubsub.listen():
                if message["type"] != "pmessage":
                    continue
                channel = message["channel"]
                if isinstance(channel, bytes):
                    channel = channel.decode()
                op = _decode(message, channel)
                if op is not None:
                    tenant_str = channel[len(REDIS_CHAT_CHANNEL_PREFIX):]
                    await self._apply(tenant_str, op, self.cross_tenant_connections())
        except asyncio.CancelledError:
            logger.info("Redis WS pattern listener cancelled")
        finally:
            await pubsub.punsubscribe(pattern)
            await pubsub.aclose()


def _of_user(targets: list[ConnectionInfo], user_id: str) -> list[ConnectionInfo]:
    return [info for info in targets if str(info.user_id) == user_id]


def _decode(message: dict[str, Any], channel: str) -> Optional[dict[str, Any]]:
    try:
        return json.loads(message["data"])
    except (TypeError, ValueError):
        logger.warning("Dropping malformed chat operation on %s", channel)
        return None


# Singleton
manager = ConnectionManager()
