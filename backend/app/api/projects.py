# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid
from decimal import Decimal

from fastapi import APIRouter, Query, status

from app.api.deps import ViewDep
from app.db import SessionDep
from app.schemas.budget import (
    AdjustmentCreate,
    AdjustmentListResponse,
    AdjustmentResponse,
    BudgetCheckResponse,
    ProjectBudgetResponse,
)
from app.schemas.organization import ProjectCreate, ProjectListResponse, ProjectResponse, ProjectUpdate
from app.services import budget as budget_service
from app.services import project as project_service

projects_router = APIRouter(prefix="/projects", tags=["projects"])


@projects_router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(payload: ProjectCreate, session: SessionDep, view: ViewDep) -> ProjectResponse:
    """Create a project under a department."""
    return await project_service.create_project(session, view, payload)


@projects_router.get("", response_model=ProjectListResponse)
async def list_projects(
    session: SessionDep,
    view: ViewDep,
    department_id: uuid.UUID | None = Query(default=None),
    active_only: bool = Query(default=False),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> ProjectListResponse:
    """List projects, optionally for one department."""
    return await project_service.list_projects(
        session, department_id=department_id, active_only=active_only, offset=offset, limit=limit
    )


@projects_router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(project_id: uuid.UUID, session: SessionDep, view: ViewDep) -> ProjectResponse:
    """Get a single project."""
    return await project_service.get_project(session, project_id)


@projects_router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: uuid.UUID,
    payload: ProjectUpdate,
    session: SessionDep,
    view: ViewDep,
) -> ProjectResponse:
    """Update a project's managers, expiry or status."""
    return await project_service.update_project(session, view, project_id, payload)


@projects_router.get("/{project_id}/budget", response_model=ProjectBudgetResponse)
async def get_project_budget(project_id: uuid.UUID, session: SessionDep, view: ViewDep) -> ProjectBudgetResponse:
    """Effective budget, allocation and headroom of a project."""
    return await budget_service.get_project_budget(session, view, project_id)


@projects_router.get("/{project_id}/budget-check", response_model=BudgetCheckResponse)
async def check_project_budget(
    project_id: uuid.UUID,
    session: SessionDep,
    view: ViewDep,
    cost: Decimal = Query(gt=0, max_digits=14, decimal_places=2),
    exclude_request_id: uuid.UUID | None = Query(default=None),
) -> BudgetCheckResponse:
    """Whether a cost would fit in the project's available budget."""
    await budget_service.get_visible_project_or_404(session, view, project_id)
    check = await budget_service.check_budget(session, project_id, cost, exclude_request_id)
    return check.to_response()


@projects_router.post(
    "/{project_id}/adjustments",
    response_model=AdjustmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_adjustment(
    project_id: uuid.UUID,
    payload: AdjustmentCreate,
    session: SessionDep,
    view: ViewDep,
) -> AdjustmentResponse:
    """Append a signed budget adjustment (finance only)."""
    return await budget_service.create_adjustment(session, view, project_id, payload)


@projects_router.get("/{project_id}/adjustments", response_model=AdjustmentListResponse)
async def list_adjustments(
    project_id: uuid.UUID,
    session: SessionDep,
    view: ViewDep,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> AdjustmentListResponse:
    """List a project's budget adjustments, newest first."""
    return await budget_service.list_adjustments(session, view, project_id, offset, limit)
