"""
Cross-tenant administration.

Everything here is SUPER_ADMIN only, except ``create_user`` and
``update_user_role`` which a tenant ADMIN may perform inside their own tenant.
"""

from __future__ import annotations

import asyncio
import uuid

import structlog
from sqlalchemy import delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamhub_api.core.auth import AuthenticatedUser, hash_password
from teamhub_api.core.chat import manager
from teamhub_api.core.errors import Conflict, Forbidden, NotFound, ValidationFailed
from teamhub_api.models.channel import Channel
from teamhub_api.models.message import Message
from teamhub_api.models.project import Project
from teamhub_api.models.tenant import Tenant
from teamhub_api.models.user import User
from teamhub_api.services.channels import detach_user_from_channels, purge_channels
from teamhub_api.services.tenants import get_tenant, merge_settings
from teamhub_api.services.users import (
    check_role_grant,
    get_user_by_email,
    merge_profile,
    normalize_email,
)
from teamhub_shared.schemas.admin import (
    AdminTenantCreate,
    AdminTenantResponse,
    AdminTenantUpdate,
    AdminUserCreate,
    AdminUserResponse,
    AdminUserUpdate,
    SystemAnalytics,
    TenantCounts,
    TenantRef,
)
from teamhub_shared.schemas.common import Role
from teamhub_shared.schemas.tenants import TenantResponse

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Tenants
# ---------------------------------------------------------------------------

async def _count_by_tenant(session: AsyncSession, model) -> dict[uuid.UUID, int]:
    result = await session.execute(
        select(model.tenant_id, func.count()).group_by(model.tenant_id)
    )
    return dict(result.all())


async def list_tenants(session: AsyncSession) -> list[AdminTenantResponse]:
    result = await session.execute(select(Tenant).order_by(Tenant.created_at.desc(), Tenant.id))
    users = await _count_by_tenant(session, User)
    projects = await _count_by_tenant(session, Project)
    channels = await _count_by_tenant(session, Channel)
    return [
        AdminTenantResponse(
            **TenantResponse.model_validate(t).model_dump(),
            counts=TenantCounts(
                users=users.get(t.id, 0),
                projects=projects.get(t.id, 0),
                channels=channels.get(t.id, 0),
            ),
        )
        for t in result.scalars().all()
    ]


async def create_tenant(req: AdminTenantCreate, session: AsyncSession) -> TenantResponse:
    tenant = Tenant(name=req.name.strip(), plan=req.plan, status=req.status.value)
    session.add(tenant)
    await session.flush()
    log.info("tenant.created", tenant_id=str(tenant.id), plan=tenant.plan, status=tenant.status)
    return TenantResponse.model_validate(tenant)


async def update_tenant(
    tenant_id: uuid.UUID, req: AdminTenantUpdate, session: AsyncSession
) -> TenantResponse:
    tenant = await get_tenant(tenant_id, session)

    if req.name is not None:
        tenant.name = req.name.strip()
    if req.plan is not None:
        tenant.plan = req.plan
    if req.status is not None:
        tenant.status = req.status.value
    if req.settings is not None:
        tenant.settings = merge_settings(tenant.settings, req.settings)

    session.add(tenant)
    await session.flush()
    log.info("tenant.updated", tenant_id=str(tenant.id), fields=sorted(req.model_dump(exclude_unset=True)))
    return TenantResponse.model_validate(tenant)


async def delete_tenant(tenant_id: uuid.UUID, session: AsyncSession) -> None:
    """Delete a tenant and everything it owns, then drop its live sockets."""
    tenant = await get_tenant(tenant_id, session)

    channel_ids = (
        await session.execute(select(Channel.id).where(Channel.tenant_id == tenant.id))
    ).scalars().all()
    await purge_channels(session, list(channel_ids))
    await session.execute(delete(Project).where(Project.tenant_id == tenant.id))
    await session.execute(delete(User).where(User.tenant_id == tenant.id))
    await session.delete(tenant)
    await session.commit()

    log.info("tenant.deleted", tenant_id=str(tenant_id), channels=len(channel_ids))
    await manager.close_tenant(tenant_id)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

def _admin_user(user: User, tenant: Tenant | None) -> AdminUserResponse:
    response = AdminUserResponse.model_validate(user)
    if tenant is not None:
        response.tenant = TenantRef(id=tenant.id, name=tenant.name)
    return response


async def list_users(session: AsyncSession) -> list[AdminUserResponse]:
    result = await session.execute(
        select(User, Tenant)
        .join(Tenant, Tenant.id == User.tenant_id)
        .order_by(User.created_at.desc(), User.id)
    )
    return [_admin_user(user, tenant) for user, tenant in result.all()]


async def _get_user(user_id: uuid.UUID, session: AsyncSession) -> User:
    user = await session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


async def create_user(
    auth: AuthenticatedUser, req: AdminUserCreate, session: AsyncSession
) -> AdminUserResponse:
    if not auth.is_super_admin:
        if req.tenant_id != auth.user.tenant_id:
            raise Forbidden("Administrators can only create users in their own tenant")
        if req.role is Role.SUPER_ADMIN:
            raise Forbidden("Only a super administrator can grant that role")

    tenant = await get_tenant(req.tenant_id, session)
    email = normalize_email(req.email)
    if await get_user_by_email(email, session):
        raise Conflict("Email is already registered", field="email")

    user = User(
        tenant_id=tenant.id,
        email=email,
        password_hash=await asyncio.to_thread(hash_password, req.password),
        role=req.role.value,
        profile={"first_name": req.first_name, "last_name": req.last_name},
    )
    session.add(user)
    try:
        await session.flush()
    except IntegrityError:
        raise Conflict("Email is already registered", field="email")

    log.info("user.created", user_id=str(user.id), tenant_id=str(tenant.id), role=user.role, by=str(auth.user_id))
    return _admin_user(user, tenant)


async def update_user(
    auth: AuthenticatedUser, user_id: uuid.UUID, req: AdminUserUpdate, session: AsyncSession
) -> AdminUserResponse:
    user = await _get_user(user_id, session)

    if req.email is not None:
        email = normalize_email(req.email)
        if email != user.email:
            if await get_user_by_email(email, session):
                raise Conflict("Email is already registered", field="email")
            user.email = email
    if req.role is not None:
        if user.id == auth.user_id and req.role != Role(user.role):
            raise ValidationFailed("You cannot change your own role", field="role")
        user.role = req.role.value
    if req.is_active is not None:
        if user.id == auth.user_id and not req.is_active:
            raise ValidationFailed("You cannot deactivate your own account", field="isActive")
        user.is_active = req.is_active
    if req.profile is not None:
        user.profile = merge_profile(user.profile, req.profile)

    session.add(user)
    await session.commit()

    log.info("user.updated", user_id=str(user.id), by=str(auth.user_id), fields=sorted(req.model_dump(exclude_unset=True)))
    if not user.is_active:
        await manager.close_user(user.tenant_id, user.id, reason="account_deactivated")
    return _admin_user(user, await session.get(Tenant, user.tenant_id))


async def update_user_role(
    auth: AuthenticatedUser, user_id: uuid.UUID, role: Role, session: AsyncSession
) -> AdminUserResponse:
    user = await _get_user(user_id, session)
    if not auth.is_super_admin and user.tenant_id != auth.user.tenant_id:
        # Users of other tenants do not exist as far as a tenant admin knows.
        raise NotFound("User not found")
    if user.id == auth.user_id:
        raise ValidationFailed("You cannot change your own role", field="role")
    check_role_grant(auth, user, role)

    user.role = role.value
    session.add(user)
    await session.flush()

    log.info("user.role_changed", user_id=str(user.id), role=role.value, by=str(auth.user_id))
    return _admin_user(user, await session.get(Tenant, user.tenant_id))


async def delete_user(auth: AuthenticatedUser, user_id: uuid.UUID, session: AsyncSession) -> None:
    """Hard delete: memberships, authored messages and DMs go with the user."""
    user = await _get_user(user_id, session)
    if user.id == auth.user_id:
        raise ValidationFailed("You cannot delete your own account")
    tenant_id = user.tenant_id

    await detach_user_from_channels(session, user.id)
    await session.delete(user)
    await session.commit()

    log.info("user.deleted", user_id=str(user_id), tenant_id=str(tenant_id), by=str(auth.user_id))
    await manager.close_user(tenant_id, user_id, reason="account_deleted")


# ---------------------------------------------------------------------------
# Analytics
# ---------------------------------------------------------------------------

async def analytics(session: AsyncSession) -> SystemAnalytics:
    async def count(model) -> int:
        return (await session.execute(select(func.count()).select_from(model))).scalar_one()

    return SystemAnalytics(
        total_users=await count(User),
        total_tenants=await count(Tenant),
        total_channels=await count(Channel),
        total_messages=await count(Message),
    )
