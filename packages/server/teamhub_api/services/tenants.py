"""
Tenant service: tenant profile and settings for tenant admins.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from teamhub_api.core.errors import NotFound
from teamhub_api.models.tenant import Tenant
from teamhub_shared.schemas.tenants import TenantResponse, TenantUpdateRequest

log = structlog.get_logger()


def merge_settings(current: dict, patch: dict) -> dict:
    """Shallow merge: top-level keys in ``patch`` replace those in ``current``."""
    return {**(current or {}), **patch}


async def get_tenant(tenant_id: uuid.UUID, session: AsyncSession) -> Tenant:
    tenant = await session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFound("Tenant not found")
    return tenant


async def update_tenant(
    tenant_id: uuid.UUID,
    req: TenantUpdateRequest,
    session: AsyncSession,
) -> TenantResponse:
    tenant = await get_tenant(tenant_id, session)

    if req.name is not None:
        tenant.name = req.name.strip()
    if req.settings is not None:
        tenant.settings = merge_settings(tenant.settings, req.settings)

    session.add(tenant)
    await session.flush()

    log.info("tenant.updated", tenant_id=str(tenant.id), fields=sorted(req.model_dump(exclude_unset=True)))
    return TenantResponse.model_validate(tenant)
