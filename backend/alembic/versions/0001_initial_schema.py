"""Initial schema: organization, requests, workflow, budget ledger and audit log.

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

MONEY = sa.Numeric(14, 2)
TIMESTAMP = sa.DateTime(timezone=True)


def _created_at() -> sa.Column:
    return sa.Column("created_at", TIMESTAMP, server_default=sa.func.now(), nullable=False)


def upgrade() -> None:
    op.create_table(
        "app_user",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("role", sa.String(length=20), server_default="EMPLOYEE", nullable=False),
        sa.Column("department_id", sa.Uuid(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
    )
    op.create_index("ix_app_user_department_id", "app_user", ["department_id"])

    op.create_table(
        "department",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        sa.Column("name", sa.String(length=255), nullable=False, unique=True),
        sa.Column("budget", MONEY, nullable=False),
        sa.Column("monthly_bonus", MONEY, nullable=False),
        sa.Column("monthly_bonus_reset_at", TIMESTAMP, nullable=True),
        sa.Column("manager_id", sa.Uuid(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("second_manager_id", sa.Uuid(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("third_manager_id", sa.Uuid(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
    )
    op.create_index("ix_department_manager_id", "department", ["manager_id"])

    op.create_table(
        "project",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("budget", MONEY, nullable=False),
        sa.Column("original_budget", MONEY, nullable=False),
        sa.Column("department_id", sa.Uuid(), sa.ForeignKey("department.id"), nullable=False),
        sa.Column("manager_id", sa.Uuid(), sa.ForeignKey("app_user.id"), nullable=False),
        sa.Column("second_manager_id", sa.Uuid(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
    )
    op.create_index("ix_project_department_id", "project", ["department_id"])
    op.create_index("ix_project_manager_id", "project", ["manager_id"])

    op.create_table(
        "budget_adjustment",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("project.id", ondelete="CASCADE"), nullable=False),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("reason", sa.String(length=1000), nullable=False),
        sa.Column("actor_id", sa.Uuid(), nullable=False),
    )
    op.create_index("ix_budget_adjustment_project_id", "budget_adjustment", ["project_id"])

    op.create_table(
        "trip_request",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        sa.Column("requester_id", sa.Uuid(), sa.ForeignKey("app_user.id"), nullable=False),
        sa.Column("department_id", sa.Uuid(), sa.ForeignKey("department.id"), nullable=True),
        sa.Column("project_id", sa.Uuid(), sa.ForeignKey("project.id"), nullable=True),
        sa.Column("trip_type", sa.String(length=20), nullable=False),
        sa.Column("trip_date", sa.Date(), nullable=False),
        sa.Column("origin", sa.String(length=255), nullable=False),
        sa.Column("destination", sa.String(length=255), nullable=False),
        sa.Column("purpose", sa.String(), nullable=True),
        sa.Column("ticket_number", sa.String(length=100), nullable=True),
        sa.Column("cost", MONEY, nullable=False),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("rejection_reason", sa.String(), nullable=True),
        sa.Column("paid", sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column("paid_at", TIMESTAMP, nullable=True),
        sa.Column("paid_by", sa.Uuid(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("last_updated_at", TIMESTAMP, nullable=True),
        sa.Column("last_updated_by", sa.Uuid(), sa.ForeignKey("app_user.id"), nullable=True),
    )
    op.create_index("ix_trip_request_requester_id", "trip_request", ["requester_id"])
    op.create_index("ix_trip_request_status", "trip_request", ["status"])
    op.create_index("ix_trip_request_project_status", "trip_request", ["project_id", "status"])
    op.create_index("ix_trip_request_department_status", "trip_request", ["department_id", "status"])

    op.create_table(
        "workflow_step",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        sa.Column(
            "request_id", sa.Uuid(), sa.ForeignKey("trip_request.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("step_type", sa.String(length=50), nullable=False),
        sa.Column("approver_kind", sa.String(length=20), nullable=False),
        sa.Column("approver_id", sa.Uuid(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("approver_role", sa.String(length=20), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("decided_at", TIMESTAMP, nullable=True),
        sa.Column("decided_by", sa.Uuid(), sa.ForeignKey("app_user.id"), nullable=True),
        sa.Column("decision_note", sa.String(), nullable=True),
        sa.UniqueConstraint("request_id", "step_order", name="uq_workflow_step_order"),
        sa.CheckConstraint(
            "(approver_kind = 'ASSIGNED' AND approver_id IS NOT NULL AND approver_role IS NULL)"
            " OR (approver_kind = 'ROLE_GATED' AND approver_id IS NULL AND approver_role IS NOT NULL)",
            name="ck_workflow_step_approver",
        ),
    )
    op.create_index("ix_workflow_step_request_id", "workflow_step", ["request_id"])

    op.create_table(
        "admin_request",
        sa.Column("id", sa.Uuid(), primary_key=True),
        _created_at(),
        sa.Column("requester_id", sa.Uuid(), sa.ForeignKey("app_user.id"), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=False),
        sa.Column("subject", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("target_type", sa.String(length=20), nullable=True),
        sa.Column("target_id", sa.Uuid(), nullable=True),
        sa.Column("requested_amount", MONEY, nullable=True),
        sa.Column("status", sa.String(length=50), nullable=False),
        sa.Column("rejection_reason", sa.String(), nullable=True),
        sa.Column("decided_at", TIMESTAMP, nullable=True),
        sa.Column("decided_by", sa.Uuid(), sa.ForeignKey("app_user.id"), nullable=True),
    )
    op.create_index("ix_admin_request_requester_id", "admin_request", ["requester_id"])
    op.create_index("ix_admin_request_target_id", "admin_request", ["target_id"])
    op.create_index("ix_admin_request_status", "admin_request", ["status"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("actor_id", sa.Uuid(), nullable=False),
        sa.Column("action", sa.String(length=50), nullable=False),
        sa.Column("entity_type", sa.String(length=50), nullable=True),
        sa.Column("entity_id", sa.Uuid(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.Column("created_at", TIMESTAMP, server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_audit_log_actor_id", "audit_log", ["actor_id"])
    op.create_index("ix_audit_log_action", "audit_log", ["action"])
    op.create_index("ix_audit_log_created_at", "audit_log", ["created_at"])
    op.create_index("ix_audit_entity", "audit_log", ["entity_type", "entity_id"])


def downgrade() -> None:
    for table in (
        "audit_log",
        "admin_request",
        "workflow_step",
        "trip_request",
        "budget_adjustment",
        "project",
        "department",
        "app_user",
    ):
        op.drop_table(table)
