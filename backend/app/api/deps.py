# ruff: noqa: B008, TC003
from __future__ import annotations

import uuid
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, Header

from app.db import SessionDep
from app.models.enums import Role
from app.schemas.auth import AuthContext
from app.services.permission import (
    Capability,
    PermissionView,
    resolve_auth_context,
    resolve_permission_view,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable


async def get_auth_context(
    session: SessionDep,
    x_user_id: uuid.UUID = Header(),
    x_active_role: Role | None = Header(default=None),
) -> AuthContext:
    """Resolve the caller from dev auth headers; the declared role comes from the database."""
    return await resolve_auth_context(session, x_user_id, x_active_role)


AuthDep = Annotated[AuthContext, Depends(get_auth_context)]


async def get_permission_view(session: SessionDep, auth: AuthDep) -> PermissionView:
    """Compute the caller's permission view against the current organizational graph."""
    return await resolve_permission_view(session, auth)


ViewDep = Annotated[PermissionView, Depends(get_permission_view)]


def require_capability(capability: Capability) -> Callable[[PermissionView], Awaitable[PermissionView]]:
    """Build a dependency that rejects callers lacking ``capability``."""

    async def _require(view: ViewDep) -> PermissionView:
        view.require(capability)
        return view

    return _require


AuditViewerDep = Annotated[PermissionView, Depends(require_capability(Capability.VIEW_AUDIT_LOGS))]
SettingsAdminDep = Annotated[PermissionView, Depends(require_capability(Capability.MANAGE_SYSTEM_SETTINGS))]
