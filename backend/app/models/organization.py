# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field

from app.models.base import TimestampMixin, UUIDBase, money_field, user_fk


class Department(UUIDBase, TimestampMixin, table=True):
    """Organizational unit with a base budget and an optional time-boxed monthly bonus."""

    __tablename__ = "department"

    name: str = Field(max_length=255, sa_column_kwargs={"unique": True})
    budget: Decimal = money_field()
    monthly_bonus: Decimal = money_field()
    # Start of the current bonus window; the bonus lapses one calendar month later.
    monthly_bonus_reset_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    manager_id: uuid.UUID | None = user_fk(index=True)
    second_manager_id: uuid.UUID | None = user_fk()
    third_manager_id: uuid.UUID | None = user_fk()
    is_active: bool = Field(default=True, sa_column_kwargs={"server_default": sa.true()})

    @property
    def manager_ids(self) -> tuple[uuid.UUID, ...]:
        return tuple(m for m in (self.manager_id, self.second_manager_id, self.third_manager_id) if m is not None)


class Project(UUIDBase, TimestampMixin, table=True):
    """Budgeted piece of work owned by a department."""

    __tablename__ = "project"

    name: str = Field(max_length=255)
    # Mirrors original_budget plus the adjustment ledger; kept for reporting.
    budget: Decimal = money_field()
    original_budget: Decimal = money_field()
    department_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("department.id"), nullable=False, index=True),
    )
    manager_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("app_user.id"), nullable=False, index=True),
    )
    second_manager_id: uuid.UUID | None = user_fk()
    expiry_date: date | None = None
    is_active: bool = Field(default=True, sa_column_kwargs={"server_default": sa.true()})

    @property
    def manager_ids(self) -> tuple[uuid.UUID, ...]:
        return tuple(m for m in (self.manager_id, self.second_manager_id) if m is not None)

    def is_expired(self, today: date) -> bool:
        return self.expiry_date is not None and self.expiry_date < today
