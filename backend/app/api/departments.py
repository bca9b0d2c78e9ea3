# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from app.api.deps import ViewDep
from app.db import SessionDep
from app.schemas.budget import DepartmentBudgetResponse
from app.schemas.organization import (
    DepartmentCreate,
    DepartmentListResponse,
    DepartmentResponse,
    DepartmentUpdate,
    MonthlyBonusPayload,
)
from app.services import budget as budget_service
from app.services import department as department_service

departments_router = APIRouter(prefix="/departments", tags=["departments"])


@departments_router.post("", response_model=DepartmentResponse, status_code=status.HTTP_201_CREATED)
async def create_department(payload: DepartmentCreate, session: SessionDep, view: ViewDep) -> DepartmentResponse:
    """Create a department (admin only)."""
    return await department_service.create_department(session, view, payload)


@departments_router.get("", response_model=DepartmentListResponse)
async def list_departments(
    session: SessionDep,
    view: ViewDep,
    active_only: bool = Query(default=False),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> DepartmentListResponse:
    """List departments."""
    return await department_service.list_departments(session, active_only=active_only, offset=offset, limit=limit)


@departments_router.get("/{department_id}", response_model=DepartmentResponse)
async def get_department(department_id: uuid.UUID, session: SessionDep, view: ViewDep) -> DepartmentResponse:
    """Get a single department."""
    return await department_service.get_department(session, department_id)


@departments_router.patch("/{department_id}", response_model=DepartmentResponse)
async def update_department(
    department_id: uuid.UUID,
    payload: DepartmentUpdate,
    session: SessionDep,
    view: ViewDep,
) -> DepartmentResponse:
    """Update a department's budget, managers or status (admin only)."""
    return await department_service.update_department(session, view, department_id, payload)


@departments_router.put("/{department_id}/monthly-bonus", response_model=DepartmentResponse)
async def set_monthly_bonus(
    department_id: uuid.UUID,
    payload: MonthlyBonusPayload,
    session: SessionDep,
    view: ViewDep,
) -> DepartmentResponse:
    """Grant or clear a department's monthly bonus."""
    return await department_service.set_monthly_bonus(session, view, department_id, payload)


@departments_router.get("/{department_id}/budget", response_model=DepartmentBudgetResponse)
async def get_department_budget(
    department_id: uuid.UUID,
    session: SessionDep,
    view: ViewDep,
) -> DepartmentBudgetResponse:
    """Effective budget, allocation and headroom of a department."""
    return await budget_service.get_department_budget(session, view, department_id)
