# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator


class BudgetCheckResponse(BaseModel):
    """Outcome of checking a cost against a project's available budget."""

    project_id: uuid.UUID
    cost: Decimal
    can_approve: bool
    budget_excess: Decimal
    available_budget: Decimal
    total_allocated: Decimal
    total_spent: Decimal
    is_expired: bool


class ProjectBudgetResponse(BaseModel):
    """Budget position of a project."""

    project_id: uuid.UUID
    original_budget: Decimal
    adjustments_total: Decimal
    effective_budget: Decimal
    total_allocated: Decimal
    total_spent: Decimal
    available_budget: Decimal
    utilization_percent: Decimal
    is_expired: bool


class DepartmentBudgetResponse(BaseModel):
    """Budget position of a department, including any live monthly bonus."""

    department_id: uuid.UUID
    base_budget: Decimal
    active_bonus: Decimal
    bonus_expires_at: datetime | None
    effective_budget: Decimal
    total_allocated: Decimal
    available_budget: Decimal


class AdjustmentCreate(BaseModel):
    """Request body for appending a signed budget adjustment to a project."""

    amount: Decimal = Field(max_digits=14, decimal_places=2)
    reason: str = Field(min_length=1, max_length=1000)

    @field_validator("amount")
    @classmethod
    def _non_zero(cls, v: Decimal) -> Decimal:
        if v == 0:
            msg = "amount must be non-zero"
            raise ValueError(msg)
        return v


class AdjustmentResponse(BaseModel):
    """Response schema for a budget adjustment."""

    id: uuid.UUID
    project_id: uuid.UUID
    amount: Decimal
    reason: str
    actor_id: uuid.UUID
    created_at: datetime


class AdjustmentListResponse(BaseModel):
    """Paginated list of budget adjustments."""

    items: list[AdjustmentResponse]
    total: int
