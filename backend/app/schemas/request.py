# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Self

from pydantic import BaseModel, Field, model_validator

from app.models.enums import (
    AdminRequestCategory,
    ApproverKind,
    Decision,
    RequestKind,
    RequestStatus,
    Role,
    StepStatus,
    StepType,
    TargetType,
    TripType,
)

# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


class TripRequestCreate(BaseModel):
    """Request body for raising a trip request."""

    trip_date: date
    origin: str = Field(min_length=1, max_length=255)
    destination: str = Field(min_length=1, max_length=255)
    purpose: str | None = Field(default=None, max_length=2000)
    cost: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    trip_type: TripType = TripType.ROUTINE
    ticket_number: str | None = Field(default=None, max_length=100)
    department_id: uuid.UUID | None = None
    project_id: uuid.UUID | None = None

    @model_validator(mode="after")
    def _validate_ticket(self) -> Self:
        if self.trip_type == TripType.TICKETED and not self.ticket_number:
            msg = "ticket_number is required for ticketed trips"
            raise ValueError(msg)
        return self


class AdminRequestCreate(BaseModel):
    """Request body for raising an administrative request."""

    category: AdminRequestCategory
    subject: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1, max_length=5000)
    target_type: TargetType | None = None
    target_id: uuid.UUID | None = None
    requested_amount: Decimal | None = Field(default=None, gt=0, max_digits=14, decimal_places=2)

    @model_validator(mode="after")
    def _validate_target(self) -> Self:
        if (self.target_type is None) != (self.target_id is None):
            msg = "target_type and target_id must be provided together"
            raise ValueError(msg)
        return self


class DecisionPayload(BaseModel):
    """Optional reason attached to an approve/reject decision."""

    reason: str | None = Field(default=None, max_length=1000)


class BulkDecisionPayload(BaseModel):
    """A single decision applied uniformly to an ordered list of requests."""

    request_type: RequestKind
    request_ids: list[uuid.UUID] = Field(min_length=1, max_length=500)
    decision: Decision
    reason: str | None = Field(default=None, max_length=1000)


class BulkPaymentPayload(BaseModel):
    """Trip requests to mark as paid."""

    request_ids: list[uuid.UUID] = Field(min_length=1, max_length=500)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class WorkflowStepResponse(BaseModel):
    """Response schema for a workflow step."""

    id: uuid.UUID
    request_id: uuid.UUID
    step_order: int
    step_type: StepType
    approver_kind: ApproverKind
    approver_id: uuid.UUID | None
    approver_role: Role | None
    status: StepStatus
    decided_at: datetime | None
    decided_by: uuid.UUID | None
    decision_note: str | None


class TripRequestResponse(BaseModel):
    """Response schema for a single trip request."""

    id: uuid.UUID
    requester_id: uuid.UUID
    department_id: uuid.UUID | None
    project_id: uuid.UUID | None
    trip_type: TripType
    trip_date: date
    origin: str
    destination: str
    purpose: str | None
    ticket_number: str | None
    cost: Decimal
    status: RequestStatus
    rejection_reason: str | None
    paid: bool
    paid_at: datetime | None
    paid_by: uuid.UUID | None
    last_updated_at: datetime | None
    last_updated_by: uuid.UUID | None
    created_at: datetime
    workflow_steps: list[WorkflowStepResponse] = []


class TripRequestListResponse(BaseModel):
    """Paginated list of trip requests."""

    items: list[TripRequestResponse]
    total: int


class AdminRequestResponse(BaseModel):
    """Response schema for a single administrative request."""

    id: uuid.UUID
    requester_id: uuid.UUID
    category: AdminRequestCategory
    subject: str
    description: str
    target_type: TargetType | None
    target_id: uuid.UUID | None
    requested_amount: Decimal | None
    status: RequestStatus
    rejection_reason: str | None
    decided_at: datetime | None
    decided_by: uuid.UUID | None
    created_at: datetime


class AdminRequestListResponse(BaseModel):
    """Paginated list of administrative requests."""

    items: list[AdminRequestResponse]
    total: int


class BudgetImpact(BaseModel):
    """Aggregate budget movement caused by a bulk decision."""

    allocations: Decimal
    deallocations: Decimal


class BulkApprovalResponse(BaseModel):
    """Result of an all-or-nothing bulk decision."""

    count: int
    results: list[TripRequestResponse | AdminRequestResponse]
    budget_impact: BudgetImpact


class PaymentFailure(BaseModel):
    """A trip that could not be marked as paid, with the reason."""

    request_id: uuid.UUID
    reason: str


class BulkPaymentResponse(BaseModel):
    """Best-effort payment marking outcome, reported per item."""

    processed: list[uuid.UUID]
    failed: list[PaymentFailure]
    total_amount: Decimal
