# ruff: noqa: TC003
from __future__ import annotations

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlmodel import col

from app.exceptions import ConflictError, ForbiddenError
from app.models.base import now_utc
from app.models.enums import AuditAction, AuditEntityType
from app.models.organization import Department
from app.schemas.organization import DepartmentListResponse, DepartmentResponse
from app.services.audit import model_to_audit_dict, write_audit_log
from app.services.budget import get_department_or_404, to_money
from app.services.permission import Capability
from app.services.user import ensure_active_users

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from app.schemas.organization import DepartmentCreate, DepartmentUpdate, MonthlyBonusPayload
    from app.services.permission import PermissionView


def _build_department_response(department: Department) -> DepartmentResponse:
    return DepartmentResponse(
        id=department.id,
        name=department.name,
        budget=to_money(department.budget),
        monthly_bonus=to_money(department.monthly_bonus),
        monthly_bonus_reset_at=department.monthly_bonus_reset_at,
        manager_id=department.manager_id,
        second_manager_id=department.second_manager_id,
        third_manager_id=department.third_manager_id,
        is_active=department.is_active,
        created_at=department.created_at,
    )


async def _ensure_unique_name(session: AsyncSession, name: str, exclude_id: uuid.UUID | None = None) -> None:
    query = select(Department.id).where(func.lower(col(Department.name)) == name.lower())
    if exclude_id is not None:
        query = query.where(col(Department.id) != exclude_id)
    result = await session.execute(query)
    if result.scalar_one_or_none() is not None:
        msg = f"Department {name!r} already exists"
        raise ConflictError(msg)


async def create_department(
    session: AsyncSession,
    view: PermissionView,
    payload: DepartmentCreate,
) -> DepartmentResponse:
    view.require(Capability.MANAGE_DEPARTMENTS)
    await _ensure_unique_name(session, payload.name)
    await ensure_active_users(session, payload.manager_id, payload.second_manager_id, payload.third_manager_id)

    department = Department(
        name=payload.name,
        budget=payload.budget,
        manager_id=payload.manager_id,
        second_manager_id=payload.second_manager_id,
        third_manager_id=payload.third_manager_id,
    )
    session.add(department)
    await session.flush()

    await write_audit_log(
        session,
        actor_id=view.user_id,
        action=AuditAction.DEPARTMENT_CREATED,
        entity_type=AuditEntityType.DEPARTMENT,
        entity_id=department.id,
        details={"after": model_to_audit_dict(department)},
    )
    await session.commit()
    await session.refresh(department)
    return _build_department_response(department)


async def update_department(
    session: AsyncSession,
    view: PermissionView,
    department_id: uuid.UUID,
    payload: DepartmentUpdate,
) -> DepartmentResponse:
    """Administrative update of budget, managers, name or active flag."""
    view.require(Capability.MANAGE_DEPARTMENTS)
    department = await get_department_or_404(session, department_id)
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("name"):
        await _ensure_unique_name(session, changes["name"], exclude_id=department.id)
    await ensure_active_users(
        session, *(changes.get(k) for k in ("manager_id", "second_manager_id", "third_manager_id"))
    )

    before = model_to_audit_dict(department)
    for key, value in changes.items():
        setattr(department, key, value)
    await session.flush()

    await write_audit_log(
        session,
        actor_id=view.user_id,
        action=AuditAction.DEPARTMENT_UPDATED,
        entity_type=AuditEntityType.DEPARTMENT,
        entity_id=department.id,
        details={"before": before, "after": model_to_audit_dict(department)},
    )
    await session.commit()
    await session.refresh(department)
    return _build_department_response(department)


async def set_monthly_bonus(
    session: AsyncSession,
    view: PermissionView,
    department_id: uuid.UUID,
    payload: MonthlyBonusPayload,
) -> DepartmentResponse:
    """Grant a monthly bonus; its window starts now. A zero amount clears it."""
    if not (view.can(Capability.MANAGE_FINANCE) or view.can(Capability.MANAGE_DEPARTMENTS)):
        msg = "Setting a department bonus requires finance or department management rights"
        raise ForbiddenError(msg)
    department = await get_department_or_404(session, department_id)

    previous = to_money(department.monthly_bonus)
    department.monthly_bonus = payload.amount
    department.monthly_bonus_reset_at = now_utc() if payload.amount > Decimal(0) else None
    await session.flush()

    await write_audit_log(
        session,
        actor_id=view.user_id,
        action=AuditAction.DEPARTMENT_BONUS_SET,
        entity_type=AuditEntityType.DEPARTMENT,
        entity_id=department.id,
        details={
            "previous_bonus": previous,
            "new_bonus": payload.amount,
            "window_start": department.monthly_bonus_reset_at,
        },
    )
    await session.commit()
    await session.refresh(department)
    return _build_department_response(department)


async def get_department(session: AsyncSession, department_id: uuid.UUID) -> DepartmentResponse:
    return _build_department_response(await get_department_or_404(session, department_id))


async def list_departments(
    session: AsyncSession,
    *,
    active_only: bool = False,
    offset: int = 0,
    limit: int = 50,
) -> DepartmentListResponse:
    filters = [col(Department.is_active).is_(True)] if active_only else []
    count_result = await session.execute(select(func.count()).select_from(Department).where(*filters))
    total = count_result.scalar_one()
    result = await session.execute(
        select(Department).where(*filters).order_by(col(Department.name)).offset(offset).limit(limit)
    )
    return DepartmentListResponse(
        items=[_build_department_response(d) for d in result.scalars().all()],
        total=total,
    )
