# ruff: noqa: B008, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query

from app.api.deps import AuditViewerDep
from app.db import SessionDep
from app.schemas.report import AuditLogListResponse
from app.services.audit import query_audit_log

reports_router = APIRouter(prefix="/audit-logs", tags=["reports"])


@reports_router.get("", response_model=AuditLogListResponse)
async def list_audit_logs(
    session: SessionDep,
    view: AuditViewerDep,
    entity_type: str | None = Query(default=None),
    entity_id: uuid.UUID | None = Query(default=None),
    action: str | None = Query(default=None),
    actor_id: uuid.UUID | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> AuditLogListResponse:
    """Query the audit log, newest first (admin only)."""
    return await query_audit_log(
        session,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        offset=offset,
        limit=limit,
    )
