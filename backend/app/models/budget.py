# ruff: noqa: TC003
from __future__ import annotations

import uuid
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field

from app.models.base import TimestampMixin, UUIDBase, money_field


class BudgetAdjustment(UUIDBase, TimestampMixin, table=True):
    """Append-only signed change to a project's effective budget."""

    __tablename__ = "budget_adjustment"

    project_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("project.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    amount: Decimal = money_field()
    reason: str = Field(max_length=1000)
    actor_id: uuid.UUID
