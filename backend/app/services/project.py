# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlmodel import col

from app.exceptions import ForbiddenError, ValidationError
from app.models.enums import AuditAction, AuditEntityType
from app.models.organization import Project
from app.schemas.organization import ProjectListResponse, ProjectResponse
from app.services.audit import model_to_audit_dict, write_audit_log
from app.services.budget import get_department_or_404, get_project_or_404, to_money
from app.services.permission import Capability
from app.services.user import ensure_active_users

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from app.schemas.organization import ProjectCreate, ProjectUpdate
    from app.services.permission import PermissionView


def _build_project_response(project: Project) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        name=project.name,
        budget=to_money(project.budget),
        original_budget=to_money(project.original_budget),
        department_id=project.department_id,
        manager_id=project.manager_id,
        second_manager_id=project.second_manager_id,
        expiry_date=project.expiry_date,
        is_active=project.is_active,
        created_at=project.created_at,
    )


def _require_project_scope(view: PermissionView, department_id: uuid.UUID, project_id: uuid.UUID | None) -> None:
    """Admins manage any project; managers only their own or their departments'."""
    view.require(Capability.MANAGE_PROJECTS)
    if view.has_system_scope:
        return
    if department_id in view.managed_department_ids or project_id in view.managed_project_ids:
        return
    msg = "Projects can only be managed within departments or projects you manage"
    raise ForbiddenError(msg)


async def create_project(session: AsyncSession, view: PermissionView, payload: ProjectCreate) -> ProjectResponse:
    _require_project_scope(view, payload.department_id, None)
    department = await get_department_or_404(session, payload.department_id)
    if not department.is_active:
        msg = f"Department {department.id} is inactive"
        raise ValidationError(msg)
    await ensure_active_users(session, payload.manager_id, payload.second_manager_id)

    project = Project(
        name=payload.name,
        budget=payload.budget,
        original_budget=payload.budget,
        department_id=payload.department_id,
        manager_id=payload.manager_id,
        second_manager_id=payload.second_manager_id,
        expiry_date=payload.expiry_date,
    )
    session.add(project)
    await session.flush()

    await write_audit_log(
        session,
        actor_id=view.user_id,
        action=AuditAction.PROJECT_CREATED,
        entity_type=AuditEntityType.PROJECT,
        entity_id=project.id,
        details={"after": model_to_audit_dict(project)},
    )
    await session.commit()
    await session.refresh(project)
    return _build_project_response(project)


async def update_project(
    session: AsyncSession,
    view: PermissionView,
    project_id: uuid.UUID,
    payload: ProjectUpdate,
) -> ProjectResponse:
    """Update managers, name, expiry or active flag. Budget moves only through adjustments."""
    project = await get_project_or_404(session, project_id)
    _require_project_scope(view, project.department_id, project.id)
    changes = payload.model_dump(exclude_unset=True)
    if "manager_id" in changes and changes["manager_id"] is None:
        msg = "A project must keep a primary manager"
        raise ValidationError(msg)
    await ensure_active_users(session, changes.get("manager_id"), changes.get("second_manager_id"))

    before = model_to_audit_dict(project)
    for key, value in changes.items():
        setattr(project, key, value)
    await session.flush()

    await write_audit_log(
        session,
        actor_id=view.user_id,
        action=AuditAction.PROJECT_UPDATED,
        entity_type=AuditEntityType.PROJECT,
        entity_id=project.id,
        details={"before": before, "after": model_to_audit_dict(project)},
    )
    await session.commit()
    await session.refresh(project)
    return _build_project_response(project)


async def get_project(session: AsyncSession, project_id: uuid.UUID) -> ProjectResponse:
    return _build_project_response(await get_project_or_404(session, project_id))


async def list_projects(
    session: AsyncSession,
    *,
    department_id: uuid.UUID | None = None,
    active_only: bool = False,
    offset: int = 0,
    limit: int = 50,
) -> ProjectListResponse:
    filters = []
    if department_id is not None:
        filters.append(col(Project.department_id) == department_id)
    if active_only:
        filters.append(col(Project.is_active).is_(True))

    count_result = await session.execute(select(func.count()).select_from(Project).where(*filters))
    total = count_result.scalar_one()
    result = await session.execute(
        select(Project).where(*filters).order_by(col(Project.name)).offset(offset).limit(limit)
    )
    return ProjectListResponse(items=[_build_project_response(p) for p in result.scalars().all()], total=total)
