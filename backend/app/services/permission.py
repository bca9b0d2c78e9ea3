"""Permission resolver.

Everything here is derived from the caller's effective role and a snapshot of
the organizational graph. ``build_permission_view`` is pure; the async helpers
only read the snapshot and request rows they need.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import and_, or_, select, true
from sqlmodel import col

from app.exceptions import ForbiddenError
from app.models.enums import RequestStatus, Role, TargetType
from app.models.request import AdminRequest, TripRequest
from app.models.user import User
from app.schemas.auth import AuthContext
from app.services.organization import load_org_graph
from app.services.workflow import can_act_on_step, current_step, get_workflow_steps

if TYPE_CHECKING:
    import uuid
    from collections.abc import Callable, Sequence

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

    from app.models.workflow import WorkflowStep
    from app.services.organization import OrgGraph


class Capability(enum.StrEnum):
    """Role-gated actions outside the approval workflow."""

    MANAGE_USERS = "manage_users"
    MANAGE_DEPARTMENTS = "manage_departments"
    MANAGE_FINANCE = "manage_finance"
    MANAGE_PROJECTS = "manage_projects"
    MANAGE_SITES = "manage_sites"
    MANAGE_RATES = "manage_rates"
    MANAGE_SYSTEM_SETTINGS = "manage_system_settings"
    VIEW_AUDIT_LOGS = "view_audit_logs"
    CREATE_TRIP_REQUEST = "create_trip_request"
    DECIDE_ADMIN_REQUESTS = "decide_admin_requests"


@dataclass(frozen=True)
class PermissionView:
    """What one caller may see and do, computed for a single call."""

    user_id: uuid.UUID
    declared_role: Role
    effective_role: Role
    managed_department_ids: frozenset[uuid.UUID]
    managed_project_ids: frozenset[uuid.UUID]

    @property
    def has_system_scope(self) -> bool:
        return self.effective_role.is_system_wide

    @property
    def is_manager_scoped(self) -> bool:
        return self.effective_role == Role.MANAGER

    @property
    def has_manager_relations(self) -> bool:
        return bool(self.managed_department_ids or self.managed_project_ids)

    def can(self, capability: Capability) -> bool:
        return _CAPABILITY_RULES[capability](self)

    def require(self, capability: Capability) -> None:
        """Raise ForbiddenError unless the capability is held."""
        if not self.can(capability):
            msg = f"Role {self.effective_role} lacks the {capability} capability"
            raise ForbiddenError(msg)

    def capabilities(self) -> dict[str, bool]:
        return {cap.value: self.can(cap) for cap in Capability}

    def can_see_trip(self, trip: TripRequest) -> bool:
        if self.has_system_scope or trip.requester_id == self.user_id:
            return True
        if not self.is_manager_scoped:
            return False
        return trip.department_id in self.managed_department_ids or trip.project_id in self.managed_project_ids

    def can_see_project_budget(self, project_id: uuid.UUID, department_id: uuid.UUID) -> bool:
        if self.has_system_scope:
            return True
        if not self.is_manager_scoped:
            return False
        return project_id in self.managed_project_ids or department_id in self.managed_department_ids

    def can_see_department_budget(self, department_id: uuid.UUID) -> bool:
        if self.has_system_scope:
            return True
        return self.is_manager_scoped and department_id in self.managed_department_ids

    def can_see_admin_request(self, request: AdminRequest, requester_department_id: uuid.UUID | None) -> bool:
        if self.has_system_scope or request.requester_id == self.user_id:
            return True
        if not self.is_manager_scoped:
            return False
        if requester_department_id is not None and requester_department_id in self.managed_department_ids:
            return True
        return _targets_managed_unit(self, request.target_type, request.target_id)


def _targets_managed_unit(view: PermissionView, target_type: str | None, target_id: uuid.UUID | None) -> bool:
    if target_type == TargetType.DEPARTMENT:
        return target_id in view.managed_department_ids
    if target_type == TargetType.PROJECT:
        return target_id in view.managed_project_ids
    return False


_CAPABILITY_RULES: dict[Capability, Callable[[PermissionView], bool]] = {
    Capability.MANAGE_USERS: lambda v: v.effective_role == Role.ADMIN,
    Capability.MANAGE_DEPARTMENTS: lambda v: v.effective_role == Role.ADMIN,
    Capability.MANAGE_FINANCE: lambda v: v.effective_role in (Role.FINANCE, Role.ADMIN),
    Capability.MANAGE_PROJECTS: lambda v: (
        v.effective_role == Role.ADMIN or (v.is_manager_scoped and v.has_manager_relations)
    ),
    Capability.MANAGE_SITES: lambda v: v.effective_role == Role.ADMIN,
    Capability.MANAGE_RATES: lambda v: v.effective_role in (Role.FINANCE, Role.ADMIN),
    Capability.MANAGE_SYSTEM_SETTINGS: lambda v: v.effective_role == Role.ADMIN,
    Capability.VIEW_AUDIT_LOGS: lambda v: v.effective_role == Role.ADMIN,
    Capability.CREATE_TRIP_REQUEST: lambda v: v.effective_role in (Role.EMPLOYEE, Role.MANAGER),
    Capability.DECIDE_ADMIN_REQUESTS: lambda v: (
        v.can(Capability.MANAGE_USERS)
        or v.can(Capability.MANAGE_SYSTEM_SETTINGS)
        or v.can(Capability.MANAGE_FINANCE)
    ),
}


# ---------------------------------------------------------------------------
# Effective role
# ---------------------------------------------------------------------------


def available_roles(declared_role: Role) -> list[Role]:
    """The declared role and every lower-privilege role it may switch to."""
    return [role for role in Role if role.rank <= declared_role.rank]


def resolve_effective_role(declared_role: Role, active_role: Role | None) -> Role:
    """Return the role to authorize with; an override may not rank above the declared role."""
    if active_role is None:
        return declared_role
    if active_role.rank > declared_role.rank:
        msg = f"Role {declared_role} cannot act as {active_role}"
        raise ForbiddenError(msg)
    return active_role


async def resolve_auth_context(
    session: AsyncSession,
    user_id: uuid.UUID,
    active_role: Role | None = None,
) -> AuthContext:
    """Load the caller's declared role from the database and validate any override."""
    result = await session.execute(select(User).where(col(User.id) == user_id))
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        msg = "Unknown or inactive user"
        raise ForbiddenError(msg)
    declared = Role(user.role)
    resolve_effective_role(declared, active_role)
    return AuthContext(user_id=user.id, declared_role=declared, active_role=active_role)


# ---------------------------------------------------------------------------
# Permission view
# ---------------------------------------------------------------------------


def build_permission_view(auth: AuthContext, graph: OrgGraph) -> PermissionView:
    """Compute the caller's permission view from an explicit graph snapshot."""
    return PermissionView(
        user_id=auth.user_id,
        declared_role=auth.declared_role,
        effective_role=resolve_effective_role(auth.declared_role, auth.active_role),
        managed_department_ids=graph.departments_managed_by(auth.user_id),
        managed_project_ids=graph.projects_managed_by(auth.user_id),
    )


async def resolve_permission_view(session: AsyncSession, auth: AuthContext) -> PermissionView:
    """Read the current graph and build the caller's permission view."""
    graph = await load_org_graph(session)
    return build_permission_view(auth, graph)


def trip_visibility_clause(view: PermissionView) -> ColumnElement[bool]:
    """SQL predicate restricting trip requests to those the view may see."""
    if view.has_system_scope:
        return true()
    own = col(TripRequest.requester_id) == view.user_id
    if not view.is_manager_scoped:
        return own
    return or_(
        own,
        col(TripRequest.department_id).in_(sorted(view.managed_department_ids)),
        col(TripRequest.project_id).in_(sorted(view.managed_project_ids)),
    )


def admin_request_visibility_clause(view: PermissionView) -> ColumnElement[bool]:
    """SQL predicate restricting admin requests to those the view may see."""
    if view.has_system_scope:
        return true()
    own = col(AdminRequest.requester_id) == view.user_id
    if not view.is_manager_scoped:
        return own
    department_members = select(User.id).where(col(User.department_id).in_(sorted(view.managed_department_ids)))
    return or_(
        own,
        col(AdminRequest.requester_id).in_(department_members),
        and_(
            col(AdminRequest.target_type) == TargetType.DEPARTMENT.value,
            col(AdminRequest.target_id).in_(sorted(view.managed_department_ids)),
        ),
        and_(
            col(AdminRequest.target_type) == TargetType.PROJECT.value,
            col(AdminRequest.target_id).in_(sorted(view.managed_project_ids)),
        ),
    )


async def resolve_visible_request_ids(session: AsyncSession, view: PermissionView) -> set[uuid.UUID]:
    """Identifiers of every trip and administrative request the view may see."""
    return await visible_trip_request_ids(session, view) | await visible_admin_request_ids(session, view)


async def visible_trip_request_ids(session: AsyncSession, view: PermissionView) -> set[uuid.UUID]:
    result = await session.execute(select(TripRequest.id).where(trip_visibility_clause(view)))
    return set(result.scalars().all())


async def visible_admin_request_ids(session: AsyncSession, view: PermissionView) -> set[uuid.UUID]:
    result = await session.execute(select(AdminRequest.id).where(admin_request_visibility_clause(view)))
    return set(result.scalars().all())


# ---------------------------------------------------------------------------
# Approval eligibility
# ---------------------------------------------------------------------------


def can_approve_trip(view: PermissionView, trip: TripRequest, steps: Sequence[WorkflowStep]) -> bool:
    """Whether the view may decide the trip's current pending step."""
    if not RequestStatus(trip.status).is_pending:
        return False
    step = current_step(steps)
    return step is not None and can_act_on_step(view, trip, step)


def can_approve_admin_request(view: PermissionView, request: AdminRequest) -> bool:
    return RequestStatus(request.status).is_pending and view.can(Capability.DECIDE_ADMIN_REQUESTS)


async def can_approve(session: AsyncSession, view: PermissionView, request: TripRequest | AdminRequest) -> bool:
    """Whether the view may approve or reject the request right now."""
    if isinstance(request, AdminRequest):
        return can_approve_admin_request(view, request)
    steps = await get_workflow_steps(session, request.id)
    return can_approve_trip(view, request, steps)
