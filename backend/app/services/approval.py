"""Approval transaction coordinator.

Every decision runs in two phases. Validation locks the rows it reads,
re-checks permission, state and budget, and produces an immutable intent
without writing anything. The commit phase applies a list of intents inside a
single SAVEPOINT, so either every intent lands or none does.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from app.db import transaction_deadline
from app.exceptions import (
    BudgetExceededError,
    ConflictError,
    ForbiddenError,
    ValidationError,
)
from app.models.base import now_utc
from app.models.enums import (
    AuditAction,
    AuditEntityType,
    Decision,
    RequestKind,
    RequestStatus,
    StepType,
)
from app.models.request import AdminRequest, TripRequest
from app.schemas.request import BudgetImpact, BulkApprovalResponse, BulkPaymentResponse, PaymentFailure
from app.services.audit import write_audit_log
from app.services.budget import ZERO, check_budget, to_money
from app.services.permission import Capability
from app.services.request import (
    build_admin_response,
    build_trip_response,
    get_admin_request_or_404,
    get_trip_or_404,
)
from app.services.workflow import (
    apply_decision,
    budget_committed,
    can_act_on_step,
    current_step,
    get_workflow_steps,
    is_override,
    requires_budget_check,
)

if TYPE_CHECKING:
    import uuid
    from collections.abc import Sequence
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from app.models.workflow import WorkflowStep
    from app.schemas.request import (
        AdminRequestResponse,
        BulkDecisionPayload,
        BulkPaymentPayload,
        TripRequestResponse,
    )
    from app.services.budget import BudgetCheck
    from app.services.permission import PermissionView

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Validated intents
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TripIntent:
    """A trip decision that passed validation and can no longer fail on business rules."""

    trip: TripRequest
    steps: tuple[WorkflowStep, ...]
    step: WorkflowStep
    decision: Decision
    prior_status: RequestStatus
    budget: BudgetCheck | None
    committed_before: bool
    override: bool

    @property
    def allocation(self) -> Decimal:
        """Budget newly committed by passing the project-manager step."""
        if self.decision == Decision.APPROVE and self.budget is not None:
            return to_money(self.trip.cost)
        return ZERO

    @property
    def release(self) -> Decimal:
        """Budget freed by rejecting a trip that had already been committed."""
        if self.decision == Decision.REJECT and self.committed_before:
            return to_money(self.trip.cost)
        return ZERO


@dataclass(frozen=True)
class AdminIntent:
    """An administrative request decision that passed validation."""

    request: AdminRequest
    decision: Decision
    prior_status: RequestStatus


ApprovalIntent = TripIntent | AdminIntent


async def validate_trip_decision(
    session: AsyncSession,
    view: PermissionView,
    request_id: uuid.UUID,
    decision: Decision,
) -> TripIntent:
    """Phase one for a trip: lock, check state, permission and budget. Writes nothing."""
    trip = await get_trip_or_404(session, request_id, for_update=True)
    prior_status = RequestStatus(trip.status)
    if not prior_status.is_pending:
        msg = f"Trip request is {prior_status} and cannot be decided"
        raise ConflictError(msg, request_id=request_id)

    steps = tuple(await get_workflow_steps(session, trip.id, for_update=True))
    step = current_step(steps)
    if step is None:
        msg = "Trip request has no pending workflow step"
        raise ConflictError(msg, request_id=request_id)
    if not can_act_on_step(view, trip, step):
        msg = f"You are not an approver for the {step.step_type} step"
        raise ForbiddenError(msg, request_id=request_id)

    budget: BudgetCheck | None = None
    if decision == Decision.APPROVE and requires_budget_check(trip, step) and trip.project_id is not None:
        budget = await check_budget(session, trip.project_id, trip.cost, exclude_request_id=trip.id, lock=True)
        if budget.is_expired:
            msg = "Project has expired and cannot take new allocations"
            raise ValidationError(msg, request_id=request_id)
        if not budget.can_approve:
            raise BudgetExceededError(budget.budget_excess, budget.available_budget, request_id=request_id)

    return TripIntent(
        trip=trip,
        steps=steps,
        step=step,
        decision=decision,
        prior_status=prior_status,
        budget=budget,
        committed_before=budget_committed(trip, steps),
        override=is_override(view, trip, step),
    )


async def validate_admin_decision(
    session: AsyncSession,
    view: PermissionView,
    request_id: uuid.UUID,
    decision: Decision,
) -> AdminIntent:
    """Phase one for an administrative request. Writes nothing."""
    request = await get_admin_request_or_404(session, request_id, for_update=True)
    prior_status = RequestStatus(request.status)
    if not prior_status.is_pending:
        msg = f"Administrative request is {prior_status} and cannot be decided"
        raise ConflictError(msg, request_id=request_id)
    if not view.can(Capability.DECIDE_ADMIN_REQUESTS):
        msg = "Deciding administrative requests requires user, settings or finance management rights"
        raise ForbiddenError(msg, request_id=request_id)
    return AdminIntent(request=request, decision=decision, prior_status=prior_status)


async def _validate(
    session: AsyncSession,
    view: PermissionView,
    kind: RequestKind,
    request_id: uuid.UUID,
    decision: Decision,
) -> ApprovalIntent:
    if kind == RequestKind.TRIP:
        return await validate_trip_decision(session, view, request_id, decision)
    return await validate_admin_decision(session, view, request_id, decision)


# ---------------------------------------------------------------------------
# Commit phase
# ---------------------------------------------------------------------------


async def _commit_trip(
    session: AsyncSession,
    view: PermissionView,
    intent: TripIntent,
    reason: str | None,
    now: datetime,
    *,
    bulk: bool,
) -> None:
    trip = intent.trip
    new_status = apply_decision(
        trip, intent.steps, intent.step, intent.decision, actor_id=view.user_id, reason=reason, now=now
    )

    details: dict[str, object] = {
        "request_id": trip.id,
        "step_id": intent.step.id,
        "step_type": intent.step.step_type,
        "prior_status": intent.prior_status,
        "new_status": new_status,
        "reason": reason,
        "override": intent.override,
        "cost": trip.cost,
    }
    if intent.budget is not None:
        details["budget"] = intent.budget.audit_details()
    if intent.release > 0:
        details["released"] = intent.release
    if bulk:
        details["bulk_action"] = True

    await write_audit_log(
        session,
        actor_id=view.user_id,
        action=(
            AuditAction.TRIP_REQUEST_APPROVED
            if intent.decision == Decision.APPROVE
            else AuditAction.TRIP_REQUEST_REJECTED
        ),
        entity_type=AuditEntityType.TRIP_REQUEST,
        entity_id=trip.id,
        details=details,
    )
    logger.info(
        "Trip request %s %s at %s by %s: %s -> %s",
        trip.id,
        intent.decision.lower(),
        StepType(intent.step.step_type),
        view.user_id,
        intent.prior_status,
        new_status,
    )


async def _commit_admin(
    session: AsyncSession,
    view: PermissionView,
    intent: AdminIntent,
    reason: str | None,
    now: datetime,
    *,
    bulk: bool,
) -> None:
    request = intent.request
    approved = intent.decision == Decision.APPROVE
    request.status = (RequestStatus.APPROVED if approved else RequestStatus.REJECTED).value
    request.decided_at = now
    request.decided_by = view.user_id
    if not approved:
        request.rejection_reason = reason

    details: dict[str, object] = {
        "request_id": request.id,
        "category": request.category,
        "prior_status": intent.prior_status,
        "new_status": request.status,
        "reason": reason,
        "requested_amount": request.requested_amount,
    }
    if bulk:
        details["bulk_action"] = True

    await write_audit_log(
        session,
        actor_id=view.user_id,
        action=AuditAction.ADMIN_REQUEST_APPROVED if approved else AuditAction.ADMIN_REQUEST_REJECTED,
        entity_type=AuditEntityType.ADMIN_REQUEST,
        entity_id=request.id,
        details=details,
    )
    logger.info("Administrative request %s %s by %s", request.id, request.status, view.user_id)


async def commit_intents(
    session: AsyncSession,
    view: PermissionView,
    intents: Sequence[ApprovalIntent],
    reason: str | None,
    *,
    bulk_kind: RequestKind | None = None,
) -> BudgetImpact:
    """Apply validated intents atomically, then commit the transaction.

    With ``bulk_kind`` each entry is flagged as part of a batch and a single
    summary entry records the aggregate budget movement.
    """
    now = now_utc()
    bulk = bulk_kind is not None
    allocations = sum((i.allocation for i in intents if isinstance(i, TripIntent)), ZERO)
    deallocations = sum((i.release for i in intents if isinstance(i, TripIntent)), ZERO)

    async with session.begin_nested():
        for intent in intents:
            if isinstance(intent, TripIntent):
                await _commit_trip(session, view, intent, reason, now, bulk=bulk)
            else:
                await _commit_admin(session, view, intent, reason, now, bulk=bulk)

        if bulk_kind is not None:
            approving = intents[0].decision == Decision.APPROVE if intents else True
            await write_audit_log(
                session,
                actor_id=view.user_id,
                action=AuditAction.BULK_APPROVAL_COMPLETED if approving else AuditAction.BULK_REJECTION_COMPLETED,
                entity_type=AuditEntityType.SYSTEM,
                details={
                    "request_type": bulk_kind,
                    "total_requests": len(intents),
                    "successful_actions": len(intents),
                    "budget_allocations": allocations,
                    "budget_deallocations": deallocations,
                    "request_ids": [_intent_id(i) for i in intents],
                    "reason": reason,
                },
            )
        await session.flush()

    await session.commit()
    return BudgetImpact(allocations=allocations, deallocations=deallocations)


def _intent_id(intent: ApprovalIntent) -> uuid.UUID:
    return intent.trip.id if isinstance(intent, TripIntent) else intent.request.id


def _intent_response(intent: ApprovalIntent) -> TripRequestResponse | AdminRequestResponse:
    if isinstance(intent, TripIntent):
        return build_trip_response(intent.trip, intent.steps)
    return build_admin_response(intent.request)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def decide_trip_request(
    session: AsyncSession,
    view: PermissionView,
    request_id: uuid.UUID,
    decision: Decision,
    reason: str | None = None,
) -> TripRequestResponse:
    """Approve or reject the current step of one trip request.

    1. Lock the request and its steps.
    2. Verify the caller may decide the current step.
    3. On a project-manager approval, lock the project and check its budget.
    4. Advance or terminate the workflow, audit, commit.
    """
    async with transaction_deadline(session):
        intent = await validate_trip_decision(session, view, request_id, decision)
        await commit_intents(session, view, [intent], reason)
    return build_trip_response(intent.trip, intent.steps)


async def decide_admin_request(
    session: AsyncSession,
    view: PermissionView,
    request_id: uuid.UUID,
    decision: Decision,
    reason: str | None = None,
) -> AdminRequestResponse:
    """Approve or reject an administrative request."""
    async with transaction_deadline(session):
        intent = await validate_admin_decision(session, view, request_id, decision)
        await commit_intents(session, view, [intent], reason)
    return build_admin_response(intent.request)


async def bulk_decide(
    session: AsyncSession,
    view: PermissionView,
    payload: BulkDecisionPayload,
) -> BulkApprovalResponse:
    """Apply one decision to every listed request, all or nothing.

    Validation runs over the whole batch first and the first failing id aborts
    it with that id attached to the error. Only a fully validated batch reaches
    the commit phase.
    """
    ids = payload.request_ids
    if len(set(ids)) != len(ids):
        msg = "Duplicate request ids in batch"
        raise ValidationError(msg)

    async with transaction_deadline(session):
        intents: list[ApprovalIntent] = [
            await _validate(session, view, payload.request_type, request_id, payload.decision) for request_id in ids
        ]
        impact = await commit_intents(session, view, intents, payload.reason, bulk_kind=payload.request_type)

    logger.info(
        "Bulk %s of %d %s requests by %s (allocated=%s released=%s)",
        payload.decision.lower(),
        len(intents),
        payload.request_type.lower(),
        view.user_id,
        impact.allocations,
        impact.deallocations,
    )
    return BulkApprovalResponse(
        count=len(intents),
        results=[_intent_response(i) for i in intents],
        budget_impact=impact,
    )


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


def _payment_blocker(trip: TripRequest) -> str | None:
    if trip.paid or trip.status == RequestStatus.PAID:
        return "already paid"
    if trip.status != RequestStatus.APPROVED:
        return f"not approved (status {trip.status})"
    return None


def _apply_payment(trip: TripRequest, actor_id: uuid.UUID, now: datetime) -> None:
    trip.status = RequestStatus.PAID.value
    trip.paid = True
    trip.paid_at = now
    trip.paid_by = actor_id
    trip.last_updated_at = now
    trip.last_updated_by = actor_id


async def _audit_payment(session: AsyncSession, actor_id: uuid.UUID, trip: TripRequest, *, bulk: bool) -> None:
    details: dict[str, object] = {
        "request_id": trip.id,
        "prior_status": RequestStatus.APPROVED,
        "new_status": trip.status,
        "cost": trip.cost,
    }
    if bulk:
        details["bulk_action"] = True
    await write_audit_log(
        session,
        actor_id=actor_id,
        action=AuditAction.TRIP_REQUEST_MARKED_PAID,
        entity_type=AuditEntityType.TRIP_REQUEST,
        entity_id=trip.id,
        details=details,
    )


async def mark_paid(session: AsyncSession, view: PermissionView, request_id: uuid.UUID) -> TripRequestResponse:
    """Mark one approved trip as paid."""
    view.require(Capability.MANAGE_FINANCE)
    async with transaction_deadline(session):
        trip = await get_trip_or_404(session, request_id, for_update=True)
        blocker = _payment_blocker(trip)
        if blocker is not None:
            msg = f"Trip request cannot be marked paid: {blocker}"
            raise ConflictError(msg, request_id=request_id)

        _apply_payment(trip, view.user_id, now_utc())
        await session.flush()
        await _audit_payment(session, view.user_id, trip, bulk=False)
        await session.commit()
    return build_trip_response(trip, await get_workflow_steps(session, trip.id))


async def bulk_mark_paid(
    session: AsyncSession,
    view: PermissionView,
    payload: BulkPaymentPayload,
) -> BulkPaymentResponse:
    """Mark every payable trip as paid and report the rest.

    Unlike bulk approval this is best-effort: a trip that is missing, unapproved
    or already paid is listed in ``failed`` and the others still go through.
    """
    view.require(Capability.MANAGE_FINANCE)
    processed: list[uuid.UUID] = []
    failed: list[PaymentFailure] = []
    total = ZERO
    now = now_utc()

    async with transaction_deadline(session):
        for request_id in dict.fromkeys(payload.request_ids):
            result = await session.execute(
                select(TripRequest).where(col(TripRequest.id) == request_id).with_for_update()
            )
            trip = result.scalar_one_or_none()
            if trip is None:
                failed.append(PaymentFailure(request_id=request_id, reason="not found"))
                continue
            blocker = _payment_blocker(trip)
            if blocker is not None:
                failed.append(PaymentFailure(request_id=request_id, reason=blocker))
                continue

            _apply_payment(trip, view.user_id, now)
            await _audit_payment(session, view.user_id, trip, bulk=True)
            processed.append(trip.id)
            total += to_money(trip.cost)

        await write_audit_log(
            session,
            actor_id=view.user_id,
            action=AuditAction.BULK_PAYMENT_PROCESSED,
            entity_type=AuditEntityType.SYSTEM,
            details={
                "processed_count": len(processed),
                "failed_count": len(failed),
                "total_amount": total,
                "processed": processed,
                "failed": [f.model_dump() for f in failed],
            },
        )
        await session.commit()

    logger.info("Bulk payment by %s: processed=%d failed=%d", view.user_id, len(processed), len(failed))
    return BulkPaymentResponse(processed=processed, failed=failed, total_amount=total)
