# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from app.api.deps import ViewDep
from app.db import SessionDep
from app.models.enums import Decision
from app.schemas.request import (
    AdminRequestCreate,
    AdminRequestListResponse,
    AdminRequestResponse,
    DecisionPayload,
    TripRequestCreate,
    TripRequestListResponse,
    TripRequestResponse,
    WorkflowStepResponse,
)
from app.services import approval as approval_service
from app.services import request as request_service

trip_requests_router = APIRouter(prefix="/trip-requests", tags=["trip-requests"])
admin_requests_router = APIRouter(prefix="/admin-requests", tags=["admin-requests"])


# ---------------------------------------------------------------------------
# Trip requests
# ---------------------------------------------------------------------------


@trip_requests_router.post("", response_model=TripRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_trip_request(payload: TripRequestCreate, session: SessionDep, view: ViewDep) -> TripRequestResponse:
    """Raise a trip request; its approval steps are generated immediately."""
    return await request_service.create_trip_request(session, view, payload)


@trip_requests_router.get("", response_model=TripRequestListResponse)
async def list_trip_requests(
    session: SessionDep,
    view: ViewDep,
    status_filter: str | None = Query(default=None, alias="status"),
    project_id: uuid.UUID | None = Query(default=None),
    department_id: uuid.UUID | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> TripRequestListResponse:
    """List trip requests visible to the caller."""
    return await request_service.list_trip_requests(
        session,
        view,
        status_filter=status_filter,
        project_id=project_id,
        department_id=department_id,
        offset=offset,
        limit=limit,
    )


@trip_requests_router.get("/{request_id}", response_model=TripRequestResponse)
async def get_trip_request(request_id: uuid.UUID, session: SessionDep, view: ViewDep) -> TripRequestResponse:
    """Get a single trip request with its workflow steps."""
    return await request_service.get_trip_request(session, view, request_id)


@trip_requests_router.get("/{request_id}/workflow", response_model=list[WorkflowStepResponse])
async def list_workflow_steps(request_id: uuid.UUID, session: SessionDep, view: ViewDep) -> list[WorkflowStepResponse]:
    """List a trip request's workflow steps in order."""
    return await request_service.list_workflow_steps(session, view, request_id)


@trip_requests_router.post("/{request_id}/approve", response_model=TripRequestResponse)
async def approve_trip_request(
    request_id: uuid.UUID,
    session: SessionDep,
    view: ViewDep,
    payload: DecisionPayload | None = None,
) -> TripRequestResponse:
    """Approve the trip's current workflow step."""
    reason = payload.reason if payload else None
    return await approval_service.decide_trip_request(session, view, request_id, Decision.APPROVE, reason)


@trip_requests_router.post("/{request_id}/reject", response_model=TripRequestResponse)
async def reject_trip_request(
    request_id: uuid.UUID,
    session: SessionDep,
    view: ViewDep,
    payload: DecisionPayload | None = None,
) -> TripRequestResponse:
    """Reject the trip at its current workflow step."""
    reason = payload.reason if payload else None
    return await approval_service.decide_trip_request(session, view, request_id, Decision.REJECT, reason)


@trip_requests_router.post("/{request_id}/cancel", response_model=TripRequestResponse)
async def cancel_trip_request(request_id: uuid.UUID, session: SessionDep, view: ViewDep) -> TripRequestResponse:
    """Withdraw a pending trip request (requester only)."""
    return await request_service.cancel_trip_request(session, view, request_id)


@trip_requests_router.post("/{request_id}/mark-paid", response_model=TripRequestResponse)
async def mark_trip_paid(request_id: uuid.UUID, session: SessionDep, view: ViewDep) -> TripRequestResponse:
    """Mark an approved trip as paid (finance only)."""
    return await approval_service.mark_paid(session, view, request_id)


# ---------------------------------------------------------------------------
# Administrative requests
# ---------------------------------------------------------------------------


@admin_requests_router.post("", response_model=AdminRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_admin_request(
    payload: AdminRequestCreate,
    session: SessionDep,
    view: ViewDep,
) -> AdminRequestResponse:
    """Raise an administrative request."""
    return await request_service.create_admin_request(session, view, payload)


@admin_requests_router.get("", response_model=AdminRequestListResponse)
async def list_admin_requests(
    session: SessionDep,
    view: ViewDep,
    status_filter: str | None = Query(default=None, alias="status"),
    category: str | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> AdminRequestListResponse:
    """List administrative requests visible to the caller."""
    return await request_service.list_admin_requests(
        session, view, status_filter=status_filter, category=category, offset=offset, limit=limit
    )


@admin_requests_router.get("/{request_id}", response_model=AdminRequestResponse)
async def get_admin_request(request_id: uuid.UUID, session: SessionDep, view: ViewDep) -> AdminRequestResponse:
    """Get a single administrative request."""
    return await request_service.get_admin_request(session, view, request_id)


@admin_requests_router.post("/{request_id}/approve", response_model=AdminRequestResponse)
async def approve_admin_request(
    request_id: uuid.UUID,
    session: SessionDep,
    view: ViewDep,
    payload: DecisionPayload | None = None,
) -> AdminRequestResponse:
    """Approve an administrative request."""
    reason = payload.reason if payload else None
    return await approval_service.decide_admin_request(session, view, request_id, Decision.APPROVE, reason)


@admin_requests_router.post("/{request_id}/reject", response_model=AdminRequestResponse)
async def reject_admin_request(
    request_id: uuid.UUID,
    session: SessionDep,
    view: ViewDep,
    payload: DecisionPayload | None = None,
) -> AdminRequestResponse:
    """Reject an administrative request."""
    reason = payload.reason if payload else None
    return await approval_service.decide_admin_request(session, view, request_id, Decision.REJECT, reason)


@admin_requests_router.post("/{request_id}/cancel", response_model=AdminRequestResponse)
async def cancel_admin_request(request_id: uuid.UUID, session: SessionDep, view: ViewDep) -> AdminRequestResponse:
    """Withdraw a pending administrative request (requester only)."""
    return await request_service.cancel_admin_request(session, view, request_id)
