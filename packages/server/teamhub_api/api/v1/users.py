"""
User endpoints (tenant-scoped).

GET    /tenants/{tenantId}/users           - List users of the tenant
GET    /tenants/{tenantId}/users/{userId}  - Get a user
PATCH  /tenants/{tenantId}/users/{userId}  - Update profile (self) or profile/role (admin)
DELETE /tenants/{tenantId}/users/{userId}  - Deactivate a user (admin)
POST   /tenants/{tenantId}/users/{userId}/avatar - Upload an avatar data URL (self or admin)
DELETE /tenants/{tenantId}/users/{userId}/avatar - Remove the avatar (self or admin)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from teamhub_api.core.auth import AuthenticatedUser, require_admin, require_member
from teamhub_api.core.database import get_session
from teamhub_api.services import users as user_service
from teamhub_shared.schemas.common import ok
from teamhub_shared.schemas.users import AvatarUploadRequest, UserUpdateRequest

router = APIRouter()


@router.get("")
async def list_users(
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    return ok(await user_service.list_users(auth.tenant_id, session))


@router.get("/{user_id}")
async def get_user(
    user_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    user = await user_service.get_tenant_user(auth.tenant_id, user_id, session)
    return ok(user_service.to_user_response(user))


@router.patch("/{user_id}")
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdateRequest,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    return ok(await user_service.update_user(auth, user_id, body, session), "User updated")


@router.delete("/{user_id}")
async def deactivate_user(
    user_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Soft delete: the account is deactivated and its sockets are closed."""
    return ok(await user_service.deactivate_user(auth, user_id, session), "User deactivated")


@router.post("/{user_id}/avatar")
async def upload_avatar(
    user_id: uuid.UUID,
    body: AvatarUploadRequest,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    return ok(await user_service.set_avatar(auth, user_id, body.avatar, session), "Avatar updated")


@router.delete("/{user_id}/avatar")
async def remove_avatar(
    user_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    return ok(await user_service.remove_avatar(auth, user_id, session), "Avatar removed")
