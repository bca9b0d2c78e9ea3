from __future__ import annotations

from fastapi import APIRouter

from app.api.deps import ViewDep
from app.db import SessionDep
from app.schemas.permission import PermissionSummaryResponse, VisibleRequestsResponse
from app.services.permission import available_roles, visible_admin_request_ids, visible_trip_request_ids

me_router = APIRouter(prefix="/me", tags=["me"])


@me_router.get("/permissions", response_model=PermissionSummaryResponse)
async def get_my_permissions(view: ViewDep) -> PermissionSummaryResponse:
    """Effective role, capabilities and switchable roles of the caller."""
    return PermissionSummaryResponse(
        user_id=view.user_id,
        declared_role=view.declared_role,
        effective_role=view.effective_role,
        available_roles=available_roles(view.declared_role),
        capabilities=view.capabilities(),
        managed_department_ids=sorted(view.managed_department_ids),
        managed_project_ids=sorted(view.managed_project_ids),
    )


@me_router.get("/visible-requests", response_model=VisibleRequestsResponse)
async def get_my_visible_requests(session: SessionDep, view: ViewDep) -> VisibleRequestsResponse:
    """Identifiers of every request the caller may see."""
    return VisibleRequestsResponse(
        trip_request_ids=sorted(await visible_trip_request_ids(session, view)),
        admin_request_ids=sorted(await visible_admin_request_ids(session, view)),
    )
