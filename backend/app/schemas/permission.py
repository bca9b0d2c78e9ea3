# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid

from pydantic import BaseModel

from app.models.enums import Role


class PermissionSummaryResponse(BaseModel):
    """What the caller's effective role may do, and which roles it may switch to."""

    user_id: uuid.UUID
    declared_role: Role
    effective_role: Role
    available_roles: list[Role]
    capabilities: dict[str, bool]
    managed_department_ids: list[uuid.UUID]
    managed_project_ids: list[uuid.UUID]


class VisibleRequestsResponse(BaseModel):
    """Identifiers of every request the caller may see."""

    trip_request_ids: list[uuid.UUID]
    admin_request_ids: list[uuid.UUID]
