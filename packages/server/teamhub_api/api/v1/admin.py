"""
Cross-tenant administration endpoints.

GET    /admin/tenants            - All tenants with counts        (SUPER_ADMIN)
POST   /admin/tenants            - Create a tenant                (SUPER_ADMIN)
PATCH  /admin/tenants/{id}       - Update a tenant                (SUPER_ADMIN)
DELETE /admin/tenants/{id}       - Delete a tenant and its data   (SUPER_ADMIN)
GET    /admin/users              - All users with their tenant    (SUPER_ADMIN)
POST   /admin/users              - Create a user                  (ADMIN in own tenant, SUPER_ADMIN)
PATCH  /admin/users/{id}         - Update a user                  (SUPER_ADMIN)
PATCH  /admin/users/{id}/role    - Change a user's role           (ADMIN in own tenant, SUPER_ADMIN)
DELETE /admin/users/{id}         - Hard-delete a user             (SUPER_ADMIN)
GET    /admin/analytics          - System totals                  (SUPER_ADMIN)
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from teamhub_api.core.auth import AuthenticatedUser, require_any_admin, require_super_admin
from teamhub_api.core.database import get_session
from teamhub_api.services import admin as admin_service
from teamhub_shared.schemas.admin import (
    AdminTenantCreate,
    AdminTenantUpdate,
    AdminUserCreate,
    AdminUserUpdate,
)
from teamhub_shared.schemas.common import ok
from teamhub_shared.schemas.users import UserRoleUpdate

router = APIRouter()


# --- Tenants ---


@router.get("/tenants")
async def list_tenants(
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    return ok(await admin_service.list_tenants(session))


@router.post("/tenants", status_code=201)
async def create_tenant(
    body: AdminTenantCreate,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    return ok(await admin_service.create_tenant(body, session), "Tenant created")


@router.patch("/tenants/{tenant_id}")
async def update_tenant(
    tenant_id: uuid.UUID,
    body: AdminTenantUpdate,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    return ok(await admin_service.update_tenant(tenant_id, body, session), "Tenant updated")


@router.delete("/tenants/{tenant_id}")
async def delete_tenant(
    tenant_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    await admin_service.delete_tenant(tenant_id, session)
    return ok(message="Tenant deleted")


# --- Users ---


@router.get("/users")
async def list_users(
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    return ok(await admin_service.list_users(session))


@router.post("/users", status_code=201)
async def create_user(
    body: AdminUserCreate,
    auth: AuthenticatedUser = Depends(require_any_admin),
    session: AsyncSession = Depends(get_session),
):
    return ok(await admin_service.create_user(auth, body, session), "User created")


@router.patch("/users/{user_id}")
async def update_user(
    user_id: uuid.UUID,
    body: AdminUserUpdate,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    return ok(await admin_service.update_user(auth, user_id, body, session), "User updated")


@router.patch("/users/{user_id}/role")
async def update_user_role(
    user_id: uuid.UUID,
    body: UserRoleUpdate,
    auth: AuthenticatedUser = Depends(require_any_admin),
    session: AsyncSession = Depends(get_session),
):
    return ok(await admin_service.update_user_role(auth, user_id, body.role, session), "Role updated")


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    await admin_service.delete_user(auth, user_id, session)
    return ok(message="User deleted")


@router.get("/analytics")
async def analytics(
    auth: AuthenticatedUser = Depends(require_super_admin),
    session: AsyncSession = Depends(get_session),
):
    return ok(await admin_service.analytics(session))
