"""
Tenant endpoints.

GET   /tenants/{tenantId}  - Tenant profile (any member)
PATCH /tenants/{tenantId}  - Rename / update settings (admin)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from teamhub_api.core.auth import AuthenticatedUser, require_admin, require_member
from teamhub_api.core.database import get_session
from teamhub_api.services import tenants as tenant_service
from teamhub_shared.schemas.common import ok
from teamhub_shared.schemas.tenants import TenantResponse, TenantUpdateRequest

router = APIRouter()


@router.get("")
async def get_tenant(
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    tenant = await tenant_service.get_tenant(auth.tenant_id, session)
    return ok(TenantResponse.model_validate(tenant))


@router.patch("")
async def update_tenant(
    body: TenantUpdateRequest,
    auth: AuthenticatedUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    return ok(await tenant_service.update_tenant(auth.tenant_id, body, session), "Tenant updated")
