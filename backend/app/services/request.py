# ruff: noqa: TC003
from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlmodel import col

from app.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.models.base import now_utc
from app.models.enums import (
    AdminRequestCategory,
    AuditAction,
    AuditEntityType,
    RequestStatus,
    TargetType,
    TripType,
)
from app.models.organization import Department, Project
from app.models.request import AdminRequest, TripRequest
from app.models.user import User
from app.models.workflow import WorkflowStep
from app.schemas.request import (
    AdminRequestListResponse,
    AdminRequestResponse,
    TripRequestListResponse,
    TripRequestResponse,
    WorkflowStepResponse,
)
from app.services.audit import write_audit_log
from app.services.budget import to_money
from app.services.organization import load_org_graph
from app.services.permission import (
    Capability,
    admin_request_visibility_clause,
    trip_visibility_clause,
)
from app.services.workflow import generate_workflow_steps, get_workflow_steps, initial_status, skip_pending_steps

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

    from app.schemas.request import AdminRequestCreate, TripRequestCreate
    from app.services.permission import PermissionView

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def build_step_response(step: WorkflowStep) -> WorkflowStepResponse:
    return WorkflowStepResponse.model_validate(step, from_attributes=True)


def build_trip_response(trip: TripRequest, steps: Sequence[WorkflowStep] = ()) -> TripRequestResponse:
    """Map a trip request and its steps to the response schema."""
    return TripRequestResponse(
        id=trip.id,
        requester_id=trip.requester_id,
        department_id=trip.department_id,
        project_id=trip.project_id,
        trip_type=TripType(trip.trip_type),
        trip_date=trip.trip_date,
        origin=trip.origin,
        destination=trip.destination,
        purpose=trip.purpose,
        ticket_number=trip.ticket_number,
        cost=to_money(trip.cost),
        status=RequestStatus(trip.status),
        rejection_reason=trip.rejection_reason,
        paid=trip.paid,
        paid_at=trip.paid_at,
        paid_by=trip.paid_by,
        last_updated_at=trip.last_updated_at,
        last_updated_by=trip.last_updated_by,
        created_at=trip.created_at,
        workflow_steps=[build_step_response(s) for s in steps],
    )


def build_admin_response(request: AdminRequest) -> AdminRequestResponse:
    """Map an administrative request to the response schema."""
    return AdminRequestResponse(
        id=request.id,
        requester_id=request.requester_id,
        category=AdminRequestCategory(request.category),
        subject=request.subject,
        description=request.description,
        target_type=TargetType(request.target_type) if request.target_type else None,
        target_id=request.target_id,
        requested_amount=to_money(request.requested_amount) if request.requested_amount is not None else None,
        status=RequestStatus(request.status),
        rejection_reason=request.rejection_reason,
        decided_at=request.decided_at,
        decided_by=request.decided_by,
        created_at=request.created_at,
    )


async def get_trip_or_404(
    session: AsyncSession,
    request_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> TripRequest:
    query = select(TripRequest).where(col(TripRequest.id) == request_id)
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    trip = result.scalar_one_or_none()
    if trip is None:
        msg = f"Trip request {request_id} not found"
        raise NotFoundError(msg, request_id=request_id)
    return trip


async def get_admin_request_or_404(
    session: AsyncSession,
    request_id: uuid.UUID,
    *,
    for_update: bool = False,
) -> AdminRequest:
    query = select(AdminRequest).where(col(AdminRequest.id) == request_id)
    if for_update:
        query = query.with_for_update()
    result = await session.execute(query)
    request = result.scalar_one_or_none()
    if request is None:
        msg = f"Administrative request {request_id} not found"
        raise NotFoundError(msg, request_id=request_id)
    return request


async def _home_department_id(session: AsyncSession, user_id: uuid.UUID) -> uuid.UUID | None:
    result = await session.execute(select(User.department_id).where(col(User.id) == user_id))
    return result.scalar_one_or_none()


async def _eligible_project(session: AsyncSession, project_id: uuid.UUID) -> Project:
    result = await session.execute(select(Project).where(col(Project.id) == project_id))
    project = result.scalar_one_or_none()
    if project is None:
        msg = f"Project {project_id} not found"
        raise ValidationError(msg)
    if not project.is_active:
        msg = f"Project {project.name} is inactive"
        raise ValidationError(msg)
    if project.is_expired(now_utc().date()):
        msg = f"Project {project.name} expired on {project.expiry_date}"
        raise ValidationError(msg)
    return project


async def _eligible_department(session: AsyncSession, department_id: uuid.UUID) -> Department:
    result = await session.execute(select(Department).where(col(Department.id) == department_id))
    department = result.scalar_one_or_none()
    if department is None:
        msg = f"Department {department_id} not found"
        raise ValidationError(msg)
    if not department.is_active:
        msg = f"Department {department.name} is inactive"
        raise ValidationError(msg)
    return department


# ---------------------------------------------------------------------------
# Trip requests
# ---------------------------------------------------------------------------


async def create_trip_request(
    session: AsyncSession,
    view: PermissionView,
    payload: TripRequestCreate,
) -> TripRequestResponse:
    """Raise a trip request together with its workflow steps.

    1. Require the trip-creation capability.
    2. Validate the linked project (active, not expired) and department.
    3. Resolve the department: explicit, else the requester's, else the project's.
    4. Generate the step sequence from the current organizational graph.
    5. Insert request and steps, audit, commit.
    """
    view.require(Capability.CREATE_TRIP_REQUEST)

    project = await _eligible_project(session, payload.project_id) if payload.project_id else None
    department_id = payload.department_id or await _home_department_id(session, view.user_id)
    if department_id is None and project is not None:
        department_id = project.department_id
    if department_id is not None:
        await _eligible_department(session, department_id)

    trip = TripRequest(
        requester_id=view.user_id,
        department_id=department_id,
        project_id=payload.project_id,
        trip_type=payload.trip_type.value,
        trip_date=payload.trip_date,
        origin=payload.origin,
        destination=payload.destination,
        purpose=payload.purpose,
        ticket_number=payload.ticket_number,
        cost=payload.cost,
    )
    graph = await load_org_graph(session)
    steps = generate_workflow_steps(trip, graph)
    trip.status = initial_status(steps).value

    session.add(trip)
    await session.flush()
    session.add_all(steps)
    await session.flush()

    await write_audit_log(
        session,
        actor_id=view.user_id,
        action=AuditAction.TRIP_REQUEST_CREATED,
        entity_type=AuditEntityType.TRIP_REQUEST,
        entity_id=trip.id,
        details={
            "request_id": trip.id,
            "new_status": trip.status,
            "cost": payload.cost,
            "trip_type": trip.trip_type,
            "project_id": trip.project_id,
            "department_id": trip.department_id,
            "steps": [s.step_type for s in steps],
        },
    )

    await session.commit()
    await session.refresh(trip)
    logger.info("Trip request %s created by %s with status %s", trip.id, view.user_id, trip.status)
    return build_trip_response(trip, steps)


async def get_trip_request(session: AsyncSession, view: PermissionView, request_id: uuid.UUID) -> TripRequestResponse:
    trip = await get_trip_or_404(session, request_id)
    if not view.can_see_trip(trip):
        msg = f"Trip request {request_id} is not visible to you"
        raise ForbiddenError(msg, request_id=request_id)
    return build_trip_response(trip, await get_workflow_steps(session, trip.id))


async def list_workflow_steps(
    session: AsyncSession,
    view: PermissionView,
    request_id: uuid.UUID,
) -> list[WorkflowStepResponse]:
    trip = await get_trip_or_404(session, request_id)
    if not view.can_see_trip(trip):
        msg = f"Trip request {request_id} is not visible to you"
        raise ForbiddenError(msg, request_id=request_id)
    return [build_step_response(s) for s in await get_workflow_steps(session, trip.id)]


async def list_trip_requests(
    session: AsyncSession,
    view: PermissionView,
    *,
    status_filter: str | None = None,
    project_id: uuid.UUID | None = None,
    department_id: uuid.UUID | None = None,
    offset: int = 0,
    limit: int = 50,
) -> TripRequestListResponse:
    """List trip requests visible to the caller, newest first."""
    filters = [trip_visibility_clause(view)]
    if status_filter is not None:
        filters.append(col(TripRequest.status) == status_filter)
    if project_id is not None:
        filters.append(col(TripRequest.project_id) == project_id)
    if department_id is not None:
        filters.append(col(TripRequest.department_id) == department_id)

    count_result = await session.execute(select(func.count()).select_from(TripRequest).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(TripRequest)
        .where(*filters)
        .order_by(col(TripRequest.created_at).desc())
        .offset(offset)
        .limit(limit)
    )
    return TripRequestListResponse(items=[build_trip_response(t) for t in result.scalars().all()], total=total)


async def cancel_trip_request(
    session: AsyncSession,
    view: PermissionView,
    request_id: uuid.UUID,
) -> TripRequestResponse:
    """Withdraw a pending trip request. Only its requester may cancel it."""
    trip = await get_trip_or_404(session, request_id, for_update=True)
    if trip.requester_id != view.user_id:
        msg = "Only the requester can cancel a trip request"
        raise ForbiddenError(msg, request_id=request_id)
    prior_status = RequestStatus(trip.status)
    if not prior_status.is_pending:
        msg = f"Cannot cancel a trip request in status {prior_status}"
        raise ConflictError(msg, request_id=request_id)

    now = now_utc()
    steps = await get_workflow_steps(session, trip.id, for_update=True)
    skip_pending_steps(steps, now)
    trip.status = RequestStatus.CANCELLED.value
    trip.last_updated_at = now
    trip.last_updated_by = view.user_id
    await session.flush()

    await write_audit_log(
        session,
        actor_id=view.user_id,
        action=AuditAction.TRIP_REQUEST_CANCELLED,
        entity_type=AuditEntityType.TRIP_REQUEST,
        entity_id=trip.id,
        details={"request_id": trip.id, "prior_status": prior_status, "new_status": trip.status},
    )
    await session.commit()
    await session.refresh(trip)
    return build_trip_response(trip, steps)


# ---------------------------------------------------------------------------
# Administrative requests
# ---------------------------------------------------------------------------


async def create_admin_request(
    session: AsyncSession,
    view: PermissionView,
    payload: AdminRequestCreate,
) -> AdminRequestResponse:
    """Raise an administrative request; it waits on a single finance-level decision."""
    if payload.category == AdminRequestCategory.BUDGET_INCREASE and (
        payload.target_id is None or payload.requested_amount is None
    ):
        msg = "Budget increase requests need a target and a requested amount"
        raise ValidationError(msg)
    if payload.target_type == TargetType.PROJECT and payload.target_id is not None:
        await _eligible_project(session, payload.target_id)
    elif payload.target_type == TargetType.DEPARTMENT and payload.target_id is not None:
        await _eligible_department(session, payload.target_id)

    request = AdminRequest(
        requester_id=view.user_id,
        category=payload.category.value,
        subject=payload.subject,
        description=payload.description,
        target_type=payload.target_type.value if payload.target_type else None,
        target_id=payload.target_id,
        requested_amount=payload.requested_amount,
        status=RequestStatus.PENDING_FINANCE_APPROVAL.value,
    )
    session.add(request)
    await session.flush()

    await write_audit_log(
        session,
        actor_id=view.user_id,
        action=AuditAction.ADMIN_REQUEST_CREATED,
        entity_type=AuditEntityType.ADMIN_REQUEST,
        entity_id=request.id,
        details={
            "request_id": request.id,
            "category": request.category,
            "target_type": request.target_type,
            "target_id": request.target_id,
            "requested_amount": payload.requested_amount,
            "new_status": request.status,
        },
    )
    await session.commit()
    await session.refresh(request)
    return build_admin_response(request)


async def get_admin_request(
    session: AsyncSession,
    view: PermissionView,
    request_id: uuid.UUID,
) -> AdminRequestResponse:
    request = await get_admin_request_or_404(session, request_id)
    requester_department = await _home_department_id(session, request.requester_id)
    if not view.can_see_admin_request(request, requester_department):
        msg = f"Administrative request {request_id} is not visible to you"
        raise ForbiddenError(msg, request_id=request_id)
    return build_admin_response(request)


async def list_admin_requests(
    session: AsyncSession,
    view: PermissionView,
    *,
    status_filter: str | None = None,
    category: str | None = None,
    offset: int = 0,
    limit: int = 50,
) -> AdminRequestListResponse:
    filters = [admin_request_visibility_clause(view)]
    if status_filter is not None:
        filters.append(col(AdminRequest.status) == status_filter)
    if category is not None:
        filters.append(col(AdminRequest.category) == category)

    count_result = await session.execute(select(func.count()).select_from(AdminRequest).where(*filters))
    total = count_result.scalar_one()

    result = await session.execute(
        select(AdminRequest)
        .where(*filters)
        .order_by(col(AdminRequest.created_at).desc())
        .offset(offset)
        .limit(limit)
    )
    return AdminRequestListResponse(items=[build_admin_response(r) for r in result.scalars().all()], total=total)


async def cancel_admin_request(
    session: AsyncSession,
    view: PermissionView,
    request_id: uuid.UUID,
) -> AdminRequestResponse:
    """Withdraw a pending administrative request. Only its requester may cancel it."""
    request = await get_admin_request_or_404(session, request_id, for_update=True)
    if request.requester_id != view.user_id:
        msg = "Only the requester can cancel an administrative request"
        raise ForbiddenError(msg, request_id=request_id)
    prior_status = RequestStatus(request.status)
    if not prior_status.is_pending:
        msg = f"Cannot cancel an administrative request in status {prior_status}"
        raise ConflictError(msg, request_id=request_id)

    request.status = RequestStatus.CANCELLED.value
    request.decided_at = now_utc()
    request.decided_by = view.user_id
    await session.flush()

    await write_audit_log(
        session,
        actor_id=view.user_id,
        action=AuditAction.ADMIN_REQUEST_CANCELLED,
        entity_type=AuditEntityType.ADMIN_REQUEST,
        entity_id=request.id,
        details={"request_id": request.id, "prior_status": prior_status, "new_status": request.status},
    )
    await session.commit()
    await session.refresh(request)
    return build_admin_response(request)
