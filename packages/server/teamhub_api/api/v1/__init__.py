"""
API v1 Router

Tenant-scoped endpoints are prefixed with /tenants/{tenantId}.
"""

from fastapi import APIRouter

from teamhub_shared.schemas.common import ok

from . import admin, auth, chat, projects, tenants, users

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["Authentication"])
router.include_router(tenants.router, prefix="/tenants/{tenantId}", tags=["Tenants"])
router.include_router(users.router, prefix="/tenants/{tenantId}/users", tags=["Users"])
router.include_router(projects.router, prefix="/tenants/{tenantId}/projects", tags=["Projects"])
router.include_router(chat.router, prefix="/tenants/{tenantId}/chat", tags=["Chat"])
router.include_router(admin.router, prefix="/admin", tags=["Admin"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and top-level resources."""
    return ok({
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/auth",
            "/tenants/{tenantId}",
            "/tenants/{tenantId}/users",
            "/tenants/{tenantId}/projects",
            "/tenants/{tenantId}/chat",
            "/admin",
        ],
    })
