"""
Capability resolution.

Every handler asks one question, "what may this caller do to a resource in
tenant X?", and gets the answer from ``capabilities_for``. Role branching
lives here and nowhere else.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from teamhub_shared.schemas.common import Role


@dataclass(frozen=True)
class Capabilities:
    can_read: bool = False
    can_write: bool = False
    can_manage: bool = False


NONE = Capabilities()
FULL = Capabilities(can_read=True, can_write=True, can_manage=True)


def capabilities_for(
    role: Role | str,
    resource_tenant_id: uuid.UUID | None,
    caller_tenant_id: uuid.UUID | None,
    is_creator: bool = False,
) -> Capabilities:
    """Resolve what ``role`` may do to a resource owned by ``resource_tenant_id``."""
    role = Role(role)

    if role is Role.SUPER_ADMIN:
        return FULL

    if resource_tenant_id is None or resource_tenant_id != caller_tenant_id:
        return NONE

    if role is Role.ADMIN:
        return FULL
    if role is Role.MEMBER:
        return Capabilities(can_read=True, can_write=True, can_manage=is_creator)
    # VIEWER
    return Capabilities(can_read=True)

