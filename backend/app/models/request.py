# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

import sqlalchemy as sa
from sqlmodel import Field

from app.models.base import TimestampMixin, UUIDBase, money_field, user_fk
from app.models.enums import RequestStatus, TripType


class TripRequest(UUIDBase, TimestampMixin, table=True):
    """A trip whose cost is routed through the approval workflow."""

    __tablename__ = "trip_request"
    __table_args__ = (
        sa.Index("ix_trip_request_project_status", "project_id", "status"),
        sa.Index("ix_trip_request_department_status", "department_id", "status"),
    )

    requester_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("app_user.id"), nullable=False, index=True),
    )
    department_id: uuid.UUID | None = Field(
        default=None,
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("department.id"), nullable=True),
    )
    project_id: uuid.UUID | None = Field(
        default=None,
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("project.id"), nullable=True),
    )
    trip_type: str = Field(default=TripType.ROUTINE, max_length=20)
    trip_date: date
    origin: str = Field(max_length=255)
    destination: str = Field(max_length=255)
    purpose: str | None = None
    ticket_number: str | None = Field(default=None, max_length=100)
    cost: Decimal = money_field()
    status: str = Field(default=RequestStatus.PENDING_DEPARTMENT_APPROVAL, max_length=50, index=True)
    rejection_reason: str | None = None
    paid: bool = Field(default=False, sa_column_kwargs={"server_default": sa.false()})
    paid_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    paid_by: uuid.UUID | None = user_fk()
    last_updated_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    last_updated_by: uuid.UUID | None = user_fk()


class AdminRequest(UUIDBase, TimestampMixin, table=True):
    """A non-trip spending or organizational request decided by finance or admins."""

    __tablename__ = "admin_request"

    requester_id: uuid.UUID = Field(
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("app_user.id"), nullable=False, index=True),
    )
    category: str = Field(max_length=50)
    subject: str = Field(max_length=255)
    description: str
    target_type: str | None = Field(default=None, max_length=20)
    target_id: uuid.UUID | None = Field(default=None, index=True)
    requested_amount: Decimal | None = money_field(default=None)
    status: str = Field(default=RequestStatus.PENDING_FINANCE_APPROVAL, max_length=50, index=True)
    rejection_reason: str | None = None
    decided_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    decided_by: uuid.UUID | None = user_fk()
