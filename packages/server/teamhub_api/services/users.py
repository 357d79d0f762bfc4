"""
User service: tenant-scoped member listing, profile updates and deactivation.
"""

from __future__ import annotations

import uuid
from typing import Iterable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamhub_api.core.auth import AuthenticatedUser
from teamhub_api.core.chat import manager
from teamhub_api.core.errors import Forbidden, NotFound, ValidationFailed
from teamhub_api.models.user import User
from teamhub_shared.schemas.common import Role
from teamhub_shared.schemas.users import (
    UserProfileUpdate,
    UserResponse,
    UserSummary,
    UserUpdateRequest,
)

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Serialization helpers (shared with chat and admin services)
# ---------------------------------------------------------------------------

def to_user_response(user: User) -> UserResponse:
    """Sanitized view of a user; the password hash never leaves the service."""
    return UserResponse.model_validate(user)


def to_user_summary(user: Optional[User]) -> Optional[UserSummary]:
    if user is None:
        return None
    return UserSummary.model_validate(user)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def merge_profile(profile: dict, update: UserProfileUpdate) -> dict:
    """Apply the allow-listed profile fields that were sent; null removes a field."""
    merged = dict(profile or {})
    for key, value in update.model_dump(exclude_unset=True).items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = value
    return merged


async def get_user_by_email(email: str, session: AsyncSession) -> Optional[User]:
    result = await session.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def load_users(user_ids: Iterable[uuid.UUID], session: AsyncSession) -> dict[uuid.UUID, User]:
    ids = set(user_ids)
    if not ids:
        return {}
    result = await session.execute(select(User).where(User.id.in_(ids)))
    return {u.id: u for u in result.scalars().all()}


# ---------------------------------------------------------------------------
# Tenant-scoped operations
# ---------------------------------------------------------------------------

async def list_users(tenant_id: uuid.UUID, session: AsyncSession) -> list[UserResponse]:
    result = await session.execute(
        select(User).where(User.tenant_id == tenant_id).order_by(User.created_at, User.id)
    )
    return [to_user_response(u) for u in result.scalars().all()]


async def get_tenant_user(
    tenant_id: uuid.UUID, user_id: uuid.UUID, session: AsyncSession
) -> User:
    """Fetch a user of the tenant; users of other tenants are NotFound."""
    user = await session.get(User, user_id)
    if user is None or user.tenant_id != tenant_id:
        raise NotFound("User not found")
    return user


async def get_editable_user(
    auth: AuthenticatedUser, user_id: uuid.UUID, session: AsyncSession
) -> User:
    """A user whose profile the caller may edit: themselves, or anyone for admins."""
    user = await get_tenant_user(auth.tenant_id, user_id, session)
    if user.id != auth.user_id and not auth.capabilities().can_manage:
        raise Forbidden("You can only update your own profile")
    return user


def check_role_grant(auth: AuthenticatedUser, target: User, new_role: Role) -> None:
    """Only a SUPER_ADMIN may grant SUPER_ADMIN or touch a SUPER_ADMIN account."""
    if auth.is_super_admin:
        return
    if new_role is Role.SUPER_ADMIN or target.role == Role.SUPER_ADMIN.value:
        raise Forbidden("Only a super administrator can manage super administrators")


async def update_user(
    auth: AuthenticatedUser,
    user_id: uuid.UUID,
    req: UserUpdateRequest,
    session: AsyncSession,
) -> UserResponse:
    """Self may edit their profile; tenant admins may edit profile and role."""
    user = await get_editable_user(auth, user_id, session)
    is_admin = auth.capabilities().can_manage
    is_self = user.id == auth.user_id

    if req.role is not None:
        if not is_admin:
            raise Forbidden("Administrator access required to change roles")
        if is_self and req.role != Role(user.role):
            raise ValidationFailed("You cannot change your own role", field="role")
        check_role_grant(auth, user, req.role)
        user.role = req.role.value

    if req.profile is not None:
        user.profile = merge_profile(user.profile, req.profile)

    session.add(user)
    await session.flush()

    log.info(
        "user.updated",
        user_id=str(user.id),
        tenant_id=str(user.tenant_id),
        by=str(auth.user_id),
        fields=sorted(req.model_dump(exclude_unset=True)),
    )
    return to_user_response(user)


async def deactivate_user(
    auth: AuthenticatedUser, user_id: uuid.UUID, session: AsyncSession
) -> UserResponse:
    """Soft delete: the account is kept but can no longer sign in."""
    user = await get_tenant_user(auth.tenant_id, user_id, session)
    if user.id == auth.user_id:
        raise ValidationFailed("You cannot deactivate your own account")
    check_role_grant(auth, user, Role(user.role))

    user.is_active = False
    session.add(user)
    await session.commit()

    log.info("user.deactivated", user_id=str(user.id), tenant_id=str(user.tenant_id), by=str(auth.user_id))
    await manager.close_user(user.tenant_id, user.id, reason="account_deactivated")
    return to_user_response(user)


async def set_avatar(
    auth: AuthenticatedUser, user_id: uuid.UUID, avatar: str, session: AsyncSession
) -> UserResponse:
    """Store a validated ``data:image/...`` URL as the user's avatar."""
    user = await get_editable_user(auth, user_id, session)
    user.profile = {**(user.profile or {}), "avatar": avatar}
    session.add(user)
    await session.flush()

    log.info("user.avatar_updated", user_id=str(user.id), by=str(auth.user_id), size=len(avatar))
    return to_user_response(user)


async def remove_avatar(
    auth: AuthenticatedUser, user_id: uuid.UUID, session: AsyncSession
) -> UserResponse:
    user = await get_editable_user(auth, user_id, session)
    profile = dict(user.profile or {})
    profile.pop("avatar", None)
    user.profile = profile
    session.add(user)
    await session.flush()

    log.info("user.avatar_removed", user_id=str(user.id), by=str(auth.user_id))
    return to_user_response(user)
