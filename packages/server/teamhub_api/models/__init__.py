# SQLModel definitions, imported here so the metadata is complete for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .tenant import Tenant  # noqa: F401
from .user import User  # noqa: F401
from .channel import Channel, ChannelMember  # noqa: F401
from .message import Message  # noqa: F401
from .project import Project  # noqa: F401
