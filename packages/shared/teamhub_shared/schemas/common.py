from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"
    VIEWER = "VIEWER"


class TenantStatus(str, Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    TRIAL = "TRIAL"


class ChannelType(str, Enum):
    PUBLIC = "PUBLIC"
    PRIVATE = "PRIVATE"
    DIRECT = "DIRECT"


class MemberRole(str, Enum):
    OWNER = "OWNER"
    MEMBER = "MEMBER"


class MessageType(str, Enum):
    TEXT = "TEXT"
    SYSTEM = "SYSTEM"


class CamelModel(BaseModel):
    """Base for wire schemas: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class UpdateModel(CamelModel):
    """Partial update payloads. Unknown fields are rejected, never merged."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class ApiError(BaseModel):
    field: Optional[str] = None
    message: str
    code: Optional[str] = None


class ApiResponse(BaseModel):
    success: bool
    data: Optional[Any] = None
    message: Optional[str] = None
    errors: Optional[List[ApiError]] = None


def ok(data: Any = None, message: Optional[str] = None) -> dict:
    """Wrap a successful payload in the response envelope."""
    body: dict = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body
