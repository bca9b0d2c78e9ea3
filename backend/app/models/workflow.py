# ruff: noqa: TC003
from __future__ import annotations

import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Field

from app.models.base import TimestampMixin, UUIDBase, user_fk
from app.models.enums import ApproverKind, StepStatus


class WorkflowStep(UUIDBase, TimestampMixin, table=True):
    """One ordered approval stage of a trip request.

    The approver is either a specific user (``ASSIGNED``) or anyone holding a
    role (``ROLE_GATED``); exactly one of ``approver_id``/``approver_role`` is set.
    """

    __tablename__ = "workflow_step"
    __table_args__ = (
        sa.UniqueConstraint("request_id", "step_order", name="uq_workflow_step_order"),
        sa.CheckConstraint(
            "(approver_kind = 'ASSIGNED' AND approver_id IS NOT NULL AND approver_role IS NULL)"
            " OR (approver_kind = 'ROLE_GATED' AND approver_id IS NULL AND approver_role IS NOT NULL)",
            name="ck_workflow_step_approver",
        ),
    )

    request_id: uuid.UUID = Field(
        sa_column=sa.Column(
            sa.Uuid, sa.ForeignKey("trip_request.id", ondelete="CASCADE"), nullable=False, index=True
        ),
    )
    step_order: int
    step_type: str = Field(max_length=50)
    approver_kind: str = Field(default=ApproverKind.ASSIGNED, max_length=20)
    approver_id: uuid.UUID | None = user_fk()
    approver_role: str | None = Field(default=None, max_length=20)
    status: str = Field(default=StepStatus.PENDING, max_length=20)
    decided_at: datetime | None = Field(default=None, sa_type=sa.DateTime(timezone=True))  # ty: ignore[invalid-argument-type]
    decided_by: uuid.UUID | None = user_fk()
    decision_note: str | None = None
