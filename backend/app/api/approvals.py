# ruff: noqa: TC001
from __future__ import annotations

from fastapi import APIRouter

from app.api.deps import ViewDep
from app.db import SessionDep
from app.schemas.request import BulkApprovalResponse, BulkDecisionPayload, BulkPaymentPayload, BulkPaymentResponse
from app.services import approval as approval_service

approvals_router = APIRouter(prefix="/approvals", tags=["approvals"])
payments_router = APIRouter(prefix="/payments", tags=["payments"])


@approvals_router.post("/bulk", response_model=BulkApprovalResponse)
async def bulk_decide(payload: BulkDecisionPayload, session: SessionDep, view: ViewDep) -> BulkApprovalResponse:
    """Approve or reject a batch of requests, all or nothing."""
    return await approval_service.bulk_decide(session, view, payload)


@payments_router.post("/bulk", response_model=BulkPaymentResponse)
async def bulk_mark_paid(payload: BulkPaymentPayload, session: SessionDep, view: ViewDep) -> BulkPaymentResponse:
    """Mark approved trips as paid, reporting failures per item (finance only)."""
    return await approval_service.bulk_mark_paid(session, view, payload)
