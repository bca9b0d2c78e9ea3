# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from app.models.enums import Role

# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for creating a user."""

    full_name: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    role: Role = Role.EMPLOYEE
    department_id: uuid.UUID | None = None


class UserUpdate(BaseModel):
    """Partial update of a user's role, home department or active flag."""

    full_name: str | None = Field(default=None, min_length=1, max_length=255)
    role: Role | None = None
    department_id: uuid.UUID | None = None
    is_active: bool | None = None


class UserResponse(BaseModel):
    """Response schema for a user."""

    id: uuid.UUID
    full_name: str
    email: str
    role: Role
    department_id: uuid.UUID | None
    is_active: bool
    created_at: datetime


class UserListResponse(BaseModel):
    """Paginated list of users."""

    items: list[UserResponse]
    total: int


# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------


class DepartmentCreate(BaseModel):
    """Request body for creating a department."""

    name: str = Field(min_length=1, max_length=255)
    budget: Decimal = Field(ge=0, max_digits=14, decimal_places=2)
    manager_id: uuid.UUID | None = None
    second_manager_id: uuid.UUID | None = None
    third_manager_id: uuid.UUID | None = None


class DepartmentUpdate(BaseModel):
    """Partial update of a department."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    budget: Decimal | None = Field(default=None, ge=0, max_digits=14, decimal_places=2)
    manager_id: uuid.UUID | None = None
    second_manager_id: uuid.UUID | None = None
    third_manager_id: uuid.UUID | None = None
    is_active: bool | None = None


class MonthlyBonusPayload(BaseModel):
    """Grant (or clear, with zero) a department's monthly bonus."""

    amount: Decimal = Field(ge=0, max_digits=14, decimal_places=2)


class DepartmentResponse(BaseModel):
    """Response schema for a department."""

    id: uuid.UUID
    name: str
    budget: Decimal
    monthly_bonus: Decimal
    monthly_bonus_reset_at: datetime | None
    manager_id: uuid.UUID | None
    second_manager_id: uuid.UUID | None
    third_manager_id: uuid.UUID | None
    is_active: bool
    created_at: datetime


class DepartmentListResponse(BaseModel):
    """Paginated list of departments."""

    items: list[DepartmentResponse]
    total: int


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


class ProjectCreate(BaseModel):
    """Request body for creating a project."""

    name: str = Field(min_length=1, max_length=255)
    budget: Decimal = Field(ge=0, max_digits=14, decimal_places=2)
    department_id: uuid.UUID
    manager_id: uuid.UUID
    second_manager_id: uuid.UUID | None = None
    expiry_date: date | None = None


class ProjectUpdate(BaseModel):
    """Partial update of a project. Budget changes go through adjustments."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    manager_id: uuid.UUID | None = None
    second_manager_id: uuid.UUID | None = None
    expiry_date: date | None = None
    is_active: bool | None = None


class ProjectResponse(BaseModel):
    """Response schema for a project."""

    id: uuid.UUID
    name: str
    budget: Decimal
    original_budget: Decimal
    department_id: uuid.UUID
    manager_id: uuid.UUID
    second_manager_id: uuid.UUID | None
    expiry_date: date | None
    is_active: bool
    created_at: datetime


class ProjectListResponse(BaseModel):
    """Paginated list of projects."""

    items: list[ProjectResponse]
    total: int
