"""
Project endpoints (tenant-scoped).

GET    /tenants/{tenantId}/projects               - List projects
POST   /tenants/{tenantId}/projects               - Create a project
GET    /tenants/{tenantId}/projects/{projectId}   - Get a project
PATCH  /tenants/{tenantId}/projects/{projectId}   - Update a project
DELETE /tenants/{tenantId}/projects/{projectId}   - Delete a project
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from teamhub_api.core.auth import AuthenticatedUser, require_member, require_writer
from teamhub_api.core.database import get_session
from teamhub_api.services import projects as project_service
from teamhub_shared.schemas.common import ok
from teamhub_shared.schemas.projects import ProjectCreate, ProjectResponse, ProjectUpdate

router = APIRouter()


@router.get("")
async def list_projects(
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    return ok(await project_service.list_projects(auth.tenant_id, session))


@router.post("", status_code=201)
async def create_project(
    body: ProjectCreate,
    auth: AuthenticatedUser = Depends(require_writer),
    session: AsyncSession = Depends(get_session),
):
    project = await project_service.create_project(auth.tenant_id, body, auth.user_id, session)
    return ok(project, "Project created")


@router.get("/{project_id}")
async def get_project(
    project_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_member),
    session: AsyncSession = Depends(get_session),
):
    project = await project_service.get_project(auth.tenant_id, project_id, session)
    return ok(ProjectResponse.model_validate(project))


@router.patch("/{project_id}")
async def update_project(
    project_id: uuid.UUID,
    body: ProjectUpdate,
    auth: AuthenticatedUser = Depends(require_writer),
    session: AsyncSession = Depends(get_session),
):
    return ok(await project_service.update_project(auth.tenant_id, project_id, body, session))


@router.delete("/{project_id}")
async def delete_project(
    project_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_writer),
    session: AsyncSession = Depends(get_session),
):
    await project_service.delete_project(auth.tenant_id, project_id, session)
    return ok(message="Project deleted")
