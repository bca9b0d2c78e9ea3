"""Workflow step engine.

Builds the ordered approval steps for a new trip request and advances or
terminates them on each decision. Step rows are mutated in memory here; the
approval coordinator owns locking, persistence and auditing.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlmodel import col

from app.exceptions import ValidationError
from app.models.enums import ApproverKind, Decision, RequestStatus, Role, StepStatus, StepType, TripType
from app.models.workflow import WorkflowStep

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession

    from app.models.request import TripRequest
    from app.services.organization import OrgGraph
    from app.services.permission import PermissionView


@dataclass(frozen=True)
class Assigned:
    """A specific user decides the step."""

    user_id: uuid.UUID


@dataclass(frozen=True)
class RoleGated:
    """Any user whose effective role matches decides the step."""

    role: Role


ApproverAssignment = Assigned | RoleGated


@dataclass(frozen=True)
class PlannedStep:
    step_type: StepType
    approver: ApproverAssignment


STATUS_FOR_STEP: dict[StepType, RequestStatus] = {
    StepType.DEPARTMENT_APPROVAL: RequestStatus.PENDING_DEPARTMENT_APPROVAL,
    StepType.PROJECT_MANAGER_APPROVAL: RequestStatus.PENDING_PROJECT_APPROVAL,
    StepType.FINANCE_APPROVAL: RequestStatus.PENDING_FINANCE_APPROVAL,
}


# ---------------------------------------------------------------------------
# Step generation
# ---------------------------------------------------------------------------


def plan_workflow_steps(
    trip_type: TripType,
    department_id: uuid.UUID | None,
    project_id: uuid.UUID | None,
    graph: OrgGraph,
) -> list[PlannedStep]:
    """Decide the ordered step sequence for a trip.

    - Urgent: [project manager if a project is linked, finance].
    - With a project: [department, project manager, finance].
    - Without a project: [department, finance].

    A department without a manager falls back to an admin-gated step.
    """
    plan: list[PlannedStep] = []

    if trip_type != TripType.URGENT:
        department = graph.department(department_id)
        if department is None:
            msg = "A department is required for non-urgent trips"
            raise ValidationError(msg)
        manager_id = department.primary_manager_id
        approver: ApproverAssignment = Assigned(manager_id) if manager_id else RoleGated(Role.ADMIN)
        plan.append(PlannedStep(StepType.DEPARTMENT_APPROVAL, approver))

    if project_id is not None:
        project = graph.project(project_id)
        if project is None:
            msg = f"Project {project_id} not found"
            raise ValidationError(msg)
        manager_id = project.primary_manager_id
        approver = Assigned(manager_id) if manager_id else RoleGated(Role.ADMIN)
        plan.append(PlannedStep(StepType.PROJECT_MANAGER_APPROVAL, approver))

    plan.append(PlannedStep(StepType.FINANCE_APPROVAL, RoleGated(Role.FINANCE)))
    return plan


def generate_workflow_steps(trip: TripRequest, graph: OrgGraph) -> list[WorkflowStep]:
    """Build unsaved step rows for a trip, ordered from 1."""
    plan = plan_workflow_steps(TripType(trip.trip_type), trip.department_id, trip.project_id, graph)
    steps: list[WorkflowStep] = []
    for order, planned in enumerate(plan, start=1):
        step = WorkflowStep(request_id=trip.id, step_order=order, step_type=planned.step_type.value)
        if isinstance(planned.approver, Assigned):
            step.approver_kind = ApproverKind.ASSIGNED.value
            step.approver_id = planned.approver.user_id
        else:
            step.approver_kind = ApproverKind.ROLE_GATED.value
            step.approver_role = planned.approver.role.value
        steps.append(step)
    return steps


def initial_status(steps: Sequence[WorkflowStep]) -> RequestStatus:
    return STATUS_FOR_STEP[StepType(steps[0].step_type)]


# ---------------------------------------------------------------------------
# Step state
# ---------------------------------------------------------------------------


def assignment_of(step: WorkflowStep) -> ApproverAssignment:
    if step.approver_kind == ApproverKind.ASSIGNED and step.approver_id is not None:
        return Assigned(step.approver_id)
    return RoleGated(Role(step.approver_role))


def current_step(steps: Sequence[WorkflowStep]) -> WorkflowStep | None:
    """The lowest-ordered pending step, if any."""
    pending = [s for s in steps if s.status == StepStatus.PENDING]
    return min(pending, key=lambda s: s.step_order) if pending else None


def budget_committed(trip: TripRequest, steps: Sequence[WorkflowStep]) -> bool:
    """Whether the trip already passed its budget-validated project-manager step."""
    if trip.project_id is None or trip.trip_type == TripType.URGENT:
        return False
    return any(
        s.step_type == StepType.PROJECT_MANAGER_APPROVAL and s.status == StepStatus.APPROVED for s in steps
    )


def requires_budget_check(trip: TripRequest, step: WorkflowStep) -> bool:
    return (
        step.step_type == StepType.PROJECT_MANAGER_APPROVAL
        and trip.project_id is not None
        and trip.trip_type != TripType.URGENT
    )


def can_act_on_step(view: PermissionView, trip: TripRequest, step: WorkflowStep) -> bool:
    """Whether the view may decide this step.

    System-wide roles may decide any pending step. Assigned steps also accept
    anyone currently holding a manager slot on the step's department or project.
    """
    if step.status != StepStatus.PENDING:
        return False
    if view.has_system_scope:
        return True

    approver = assignment_of(step)
    if isinstance(approver, RoleGated):
        return view.effective_role == approver.role
    if not view.is_manager_scoped:
        return False
    if approver.user_id == view.user_id:
        return True
    if step.step_type == StepType.DEPARTMENT_APPROVAL:
        return trip.department_id in view.managed_department_ids
    if step.step_type == StepType.PROJECT_MANAGER_APPROVAL:
        return trip.project_id in view.managed_project_ids
    return False


def is_override(view: PermissionView, trip: TripRequest, step: WorkflowStep) -> bool:
    """True when only the system-wide scope, not the assignment, allows the decision."""
    if not view.has_system_scope:
        return False
    approver = assignment_of(step)
    if isinstance(approver, RoleGated):
        return view.effective_role != approver.role
    return approver.user_id != view.user_id


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def skip_pending_steps(steps: Sequence[WorkflowStep], now: datetime) -> None:
    for step in steps:
        if step.status == StepStatus.PENDING:
            step.status = StepStatus.SKIPPED.value
            step.decided_at = now


def apply_decision(
    trip: TripRequest,
    steps: Sequence[WorkflowStep],
    step: WorkflowStep,
    decision: Decision,
    *,
    actor_id: uuid.UUID,
    reason: str | None,
    now: datetime,
) -> RequestStatus:
    """Decide ``step`` and move the trip to its next status, which is returned."""
    step.decided_at = now
    step.decided_by = actor_id
    step.decision_note = reason

    if decision == Decision.APPROVE:
        step.status = StepStatus.APPROVED.value
        following = current_step(steps)
        new_status = STATUS_FOR_STEP[StepType(following.step_type)] if following else RequestStatus.APPROVED
    else:
        step.status = StepStatus.REJECTED.value
        skip_pending_steps(steps, now)
        new_status = RequestStatus.REJECTED
        trip.rejection_reason = reason

    trip.status = new_status.value
    trip.last_updated_at = now
    trip.last_updated_by = actor_id
    return new_status


async def get_workflow_steps(
    session: AsyncSession,
    request_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> list[WorkflowStep]:
    """Load a trip's steps in order."""
    query = (
        select(WorkflowStep)
        .where(col(WorkflowStep.request_id) == request_id)
        .order_by(col(WorkflowStep.step_order))
    )
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    return list(result.scalars().all())
