"""
Realtime gateway wire contract.

Every server frame is ``{"event": <name>, "data": {...}}``.
"""

from enum import Enum


class ChatEvent(str, Enum):
    CONNECTED = "connected"
    AUTH_ERROR = "auth:error"
    PONG = "pong"
    MESSAGE_NEW = "message:new"
    MESSAGE_DELETED = "message:deleted"
    MEMBER_JOINED = "member:joined"
    MEMBER_LEFT = "member:left"
    MEMBER_ADDED = "member:added"
    MEMBER_REMOVED = "member:removed"
    CHANNEL_DELETED = "channel:deleted"
    # Sent to the recipient's ``user:<id>`` room when a DM is opened with them
    DIRECT_MESSAGE_CREATED = "dm:created"


# WebSocket close codes (4000-4999 are application-defined)
WS_CLOSE_AUTH_FAILED = 4001
WS_CLOSE_SESSION_ENDED = 4003


def channel_room(channel_id) -> str:
    return f"channel:{channel_id}"


def user_room(user_id) -> str:
    return f"user:{user_id}"
