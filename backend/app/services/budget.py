"""Budget ledger.

Availability is always computed, never stored: project effective budget is the
original grant plus the signed adjustment ledger, and allocation is the cost of
every trip currently pending, approved or paid against the project. Urgent trips
carry no budget impact.
"""

from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlmodel import col

from app.config import get_settings
from app.exceptions import ForbiddenError, NotFoundError
from app.models.base import as_utc, now_utc
from app.models.budget import BudgetAdjustment
from app.models.enums import ALLOCATED_STATUSES, AuditAction, AuditEntityType, RequestStatus, TripType
from app.models.organization import Department, Project
from app.models.request import TripRequest
from app.schemas.budget import (
    AdjustmentListResponse,
    AdjustmentResponse,
    BudgetCheckResponse,
    DepartmentBudgetResponse,
    ProjectBudgetResponse,
)
from app.services.audit import write_audit_log
from app.services.permission import Capability

if TYPE_CHECKING:
    import uuid
    from datetime import date, datetime

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

    from app.schemas.budget import AdjustmentCreate
    from app.services.permission import PermissionView

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


@dataclass(frozen=True)
class BudgetCheck:
    """Result of checking a cost against a project's headroom."""

    project_id: uuid.UUID
    cost: Decimal
    can_approve: bool
    budget_excess: Decimal
    available_budget: Decimal
    effective_budget: Decimal
    total_allocated: Decimal
    total_spent: Decimal
    is_expired: bool

    def to_response(self) -> BudgetCheckResponse:
        return BudgetCheckResponse(
            project_id=self.project_id,
            cost=self.cost,
            can_approve=self.can_approve,
            budget_excess=self.budget_excess,
            available_budget=self.available_budget,
            total_allocated=self.total_allocated,
            total_spent=self.total_spent,
            is_expired=self.is_expired,
        )

    def audit_details(self) -> dict[str, str]:
        return {
            "effective_budget": str(self.effective_budget),
            "total_allocated": str(self.total_allocated),
            "available_budget": str(self.available_budget),
            "cost": str(self.cost),
        }


# ---------------------------------------------------------------------------
# Pure arithmetic
# ---------------------------------------------------------------------------


def to_money(value: object) -> Decimal:
    """Normalize a driver-returned amount (Decimal, float, int or None) to cents."""
    if value is None:
        return ZERO
    return Decimal(str(value)).quantize(CENT)


def evaluate_headroom(cost: Decimal, effective: Decimal, allocated: Decimal) -> tuple[bool, Decimal, Decimal]:
    """Return ``(can_approve, budget_excess, available)`` for a cost."""
    available = to_money(effective - allocated)
    cost = to_money(cost)
    if cost > available:
        return False, cost - available, available
    return True, ZERO, available


def add_months(value: datetime, months: int) -> datetime:
    """Shift a timestamp by calendar months, clamping to the month's last day."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    _, days_in_month = monthrange(year, month)
    return value.replace(year=year, month=month, day=min(value.day, days_in_month))


def bonus_expires_at(department: Department, window_months: int | None = None) -> datetime | None:
    if department.monthly_bonus_reset_at is None:
        return None
    months = window_months if window_months is not None else get_settings().bonus_window_months
    return add_months(as_utc(department.monthly_bonus_reset_at), months)


def active_bonus(department: Department, now: datetime, window_months: int | None = None) -> Decimal:
    """The department's bonus, or zero once its window has lapsed."""
    bonus = to_money(department.monthly_bonus)
    expires_at = bonus_expires_at(department, window_months)
    if expires_at is not None and now >= expires_at:
        return ZERO
    return bonus


def department_effective_budget(department: Department, now: datetime, window_months: int | None = None) -> Decimal:
    return to_money(department.budget) + active_bonus(department, now, window_months)


# ---------------------------------------------------------------------------
# Ledger queries
# ---------------------------------------------------------------------------


def _budget_impact_filters(exclude_request_id: uuid.UUID | None) -> list[ColumnElement[bool]]:
    filters = [
        col(TripRequest.status).in_(sorted(ALLOCATED_STATUSES)),
        col(TripRequest.trip_type) != TripType.URGENT.value,
    ]
    if exclude_request_id is not None:
        filters.append(col(TripRequest.id) != exclude_request_id)
    return filters


async def _sum_cost(session: AsyncSession, *filters: ColumnElement[bool]) -> Decimal:
    result = await session.execute(select(func.coalesce(func.sum(col(TripRequest.cost)), 0)).where(*filters))
    return to_money(result.scalar_one())


async def adjustments_total(session: AsyncSession, project_id: uuid.UUID) -> Decimal:
    result = await session.execute(
        select(func.coalesce(func.sum(col(BudgetAdjustment.amount)), 0)).where(
            col(BudgetAdjustment.project_id) == project_id
        )
    )
    return to_money(result.scalar_one())


async def project_effective_budget(session: AsyncSession, project: Project) -> Decimal:
    return to_money(project.original_budget) + await adjustments_total(session, project.id)


async def total_allocated_for_project(
    session: AsyncSession,
    project_id: uuid.UUID,
    exclude_request_id: uuid.UUID | None = None,
) -> Decimal:
    """Cost of every non-urgent trip pending, approved or paid against the project."""
    return await _sum_cost(
        session, col(TripRequest.project_id) == project_id, *_budget_impact_filters(exclude_request_id)
    )


async def total_spent_for_project(session: AsyncSession, project_id: uuid.UUID) -> Decimal:
    return await _sum_cost(
        session,
        col(TripRequest.project_id) == project_id,
        col(TripRequest.status) == RequestStatus.PAID.value,
        col(TripRequest.trip_type) != TripType.URGENT.value,
    )


async def total_allocated_for_department(
    session: AsyncSession,
    department_id: uuid.UUID,
    exclude_request_id: uuid.UUID | None = None,
) -> Decimal:
    """Cost of non-urgent trips charged to the department without a project."""
    return await _sum_cost(
        session,
        col(TripRequest.department_id) == department_id,
        col(TripRequest.project_id).is_(None),
        *_budget_impact_filters(exclude_request_id),
    )


async def get_project_or_404(session: AsyncSession, project_id: uuid.UUID, *, for_update: bool = False) -> Project:
    query = select(Project).where(col(Project.id) == project_id)
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    project = result.scalar_one_or_none()
    if project is None:
        msg = f"Project {project_id} not found"
        raise NotFoundError(msg)
    return project


async def get_department_or_404(session: AsyncSession, department_id: uuid.UUID) -> Department:
    result = await session.execute(select(Department).where(col(Department.id) == department_id))
    department = result.scalar_one_or_none()
    if department is None:
        msg = f"Department {department_id} not found"
        raise NotFoundError(msg)
    return department


async def get_visible_project_or_404(session: AsyncSession, view: PermissionView, project_id: uuid.UUID) -> Project:
    """Load a project whose budget figures the caller may read."""
    project = await get_project_or_404(session, project_id)
    if not view.can_see_project_budget(project.id, project.department_id):
        msg = f"Budget of project {project_id} is not visible to this user"
        raise ForbiddenError(msg)
    return project


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def check_budget(
    session: AsyncSession,
    project_id: uuid.UUID,
    cost: Decimal,
    exclude_request_id: uuid.UUID | None = None,
    *,
    lock: bool = False,
    today: date | None = None,
) -> BudgetCheck:
    """Check whether ``cost`` fits in the project's available budget.

    ``exclude_request_id`` drops that trip from the allocation so a pending
    request is not counted against itself. With ``lock`` the project row is
    held ``FOR UPDATE`` until the caller's transaction ends, serializing
    concurrent checks on the same project. An expired project never approves.
    """
    project = await get_project_or_404(session, project_id, for_update=lock)
    today = today or now_utc().date()

    effective = await project_effective_budget(session, project)
    allocated = await total_allocated_for_project(session, project_id, exclude_request_id)
    can_approve, excess, available = evaluate_headroom(cost, effective, allocated)
    expired = project.is_expired(today)

    return BudgetCheck(
        project_id=project_id,
        cost=to_money(cost),
        can_approve=can_approve and not expired,
        budget_excess=excess,
        available_budget=available,
        effective_budget=effective,
        total_allocated=allocated,
        total_spent=await total_spent_for_project(session, project_id),
        is_expired=expired,
    )


async def get_project_budget(
    session: AsyncSession, view: PermissionView, project_id: uuid.UUID
) -> ProjectBudgetResponse:
    """Summarize a project's budget position."""
    project = await get_visible_project_or_404(session, view, project_id)
    adjustments = await adjustments_total(session, project_id)
    effective = to_money(project.original_budget) + adjustments
    allocated = await total_allocated_for_project(session, project_id)
    utilization = (allocated / effective * 100).quantize(CENT) if effective > 0 else ZERO

    return ProjectBudgetResponse(
        project_id=project.id,
        original_budget=to_money(project.original_budget),
        adjustments_total=adjustments,
        effective_budget=effective,
        total_allocated=allocated,
        total_spent=await total_spent_for_project(session, project_id),
        available_budget=to_money(effective - allocated),
        utilization_percent=utilization,
        is_expired=project.is_expired(now_utc().date()),
    )


async def get_department_budget(
    session: AsyncSession,
    view: PermissionView,
    department_id: uuid.UUID,
    now: datetime | None = None,
) -> DepartmentBudgetResponse:
    """Summarize a department's budget position, counting the bonus only while live."""
    department = await get_department_or_404(session, department_id)
    if not view.can_see_department_budget(department.id):
        msg = f"Budget of department {department_id} is not visible to this user"
        raise ForbiddenError(msg)
    now = now or now_utc()
    effective = department_effective_budget(department, now)
    allocated = await total_allocated_for_department(session, department_id)

    return DepartmentBudgetResponse(
        department_id=department.id,
        base_budget=to_money(department.budget),
        active_bonus=active_bonus(department, now),
        bonus_expires_at=bonus_expires_at(department),
        effective_budget=effective,
        total_allocated=allocated,
        available_budget=to_money(effective - allocated),
    )


async def create_adjustment(
    session: AsyncSession,
    view: PermissionView,
    project_id: uuid.UUID,
    payload: AdjustmentCreate,
) -> AdjustmentResponse:
    """Append a signed adjustment to a project's budget ledger.

    1. Require the finance capability.
    2. Lock the project row.
    3. Insert the adjustment.
    4. Mirror original + adjustments onto ``project.budget``.
    5. Audit and commit.
    """
    view.require(Capability.MANAGE_FINANCE)
    project = await get_project_or_404(session, project_id, for_update=True)

    adjustment = BudgetAdjustment(
        project_id=project.id,
        amount=payload.amount,
        reason=payload.reason,
        actor_id=view.user_id,
    )
    session.add(adjustment)
    await session.flush()

    previous_budget = to_money(project.budget)
    project.budget = await project_effective_budget(session, project)

    await write_audit_log(
        session,
        actor_id=view.user_id,
        action=AuditAction.BUDGET_ADJUSTMENT_CREATED,
        entity_type=AuditEntityType.PROJECT,
        entity_id=project.id,
        details={
            "adjustment_id": adjustment.id,
            "amount": payload.amount,
            "reason": payload.reason,
            "previous_budget": previous_budget,
            "new_budget": project.budget,
        },
    )

    await session.commit()
    await session.refresh(adjustment)
    return _build_adjustment_response(adjustment)


async def list_adjustments(
    session: AsyncSession,
    view: PermissionView,
    project_id: uuid.UUID,
    offset: int = 0,
    limit: int = 50,
) -> AdjustmentListResponse:
    await get_visible_project_or_404(session, view, project_id)
    filters = [col(BudgetAdjustment.project_id) == project_id]

    count_result = await session.execute(select(func.count()).select_from(BudgetAdjustment).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(BudgetAdjustment)
        .where(*filters)
        .order_by(col(BudgetAdjustment.created_at).desc())
        .offset(offset)
        .limit(limit)
    )
    return AdjustmentListResponse(
        items=[_build_adjustment_response(a) for a in result.scalars().all()],
        total=total,
    )


def _build_adjustment_response(adjustment: BudgetAdjustment) -> AdjustmentResponse:
    return AdjustmentResponse(
        id=adjustment.id,
        project_id=adjustment.project_id,
        amount=to_money(adjustment.amount),
        reason=adjustment.reason,
        actor_id=adjustment.actor_id,
        created_at=adjustment.created_at,
    )
