"""
Project service: tenant-owned project CRUD.
"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from teamhub_api.core.errors import NotFound
from teamhub_api.models.project import Project
from teamhub_api.services.tenants import merge_settings
from teamhub_shared.schemas.projects import ProjectCreate, ProjectResponse, ProjectUpdate

log = structlog.get_logger()


async def list_projects(tenant_id: uuid.UUID, session: AsyncSession) -> list[ProjectResponse]:
    result = await session.execute(
        select(Project).where(Project.tenant_id == tenant_id).order_by(Project.created_at.desc(), Project.id)
    )
    return [ProjectResponse.model_validate(p) for p in result.scalars().all()]


async def get_project(tenant_id: uuid.UUID, project_id: uuid.UUID, session: AsyncSession) -> Project:
    project = await session.get(Project, project_id)
    if project is None or project.tenant_id != tenant_id:
        raise NotFound("Project not found")
    return project


async def create_project(
    tenant_id: uuid.UUID, req: ProjectCreate, created_by: uuid.UUID, session: AsyncSession
) -> ProjectResponse:
    project = Project(
        tenant_id=tenant_id,
        name=req.name.strip(),
        description=req.description,
        settings=req.settings,
    )
    session.add(project)
    await session.flush()

    log.info("project.created", project_id=str(project.id), tenant_id=str(tenant_id), user_id=str(created_by))
    return ProjectResponse.model_validate(project)


async def update_project(
    tenant_id: uuid.UUID, project_id: uuid.UUID, req: ProjectUpdate, session: AsyncSession
) -> ProjectResponse:
    project = await get_project(tenant_id, project_id, session)

    if req.name is not None:
        project.name = req.name.strip()
    if "description" in req.model_fields_set:
        project.description = req.description
    if req.settings is not None:
        project.settings = merge_settings(project.settings, req.settings)

    session.add(project)
    await session.flush()

    log.info("project.updated", project_id=str(project.id), tenant_id=str(tenant_id))
    return ProjectResponse.model_validate(project)


async def delete_project(tenant_id: uuid.UUID, project_id: uuid.UUID, session: AsyncSession) -> None:
    project = await get_project(tenant_id, project_id, session)
    await session.delete(project)
    await session.flush()
    log.info("project.deleted", project_id=str(project_id), tenant_id=str(tenant_id))
