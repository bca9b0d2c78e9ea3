# ruff: noqa: TC003
from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlmodel import col

from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.models.enums import AuditAction, AuditEntityType, Role
from app.models.organization import Department
from app.models.user import User
from app.schemas.organization import UserListResponse, UserResponse
from app.services.audit import model_to_audit_dict, write_audit_log
from app.services.permission import Capability

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from app.schemas.organization import UserCreate, UserUpdate
    from app.services.permission import PermissionView


def _build_user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        full_name=user.full_name,
        email=user.email,
        role=Role(user.role),
        department_id=user.department_id,
        is_active=user.is_active,
        created_at=user.created_at,
    )


async def get_user_or_404(session: AsyncSession, user_id: uuid.UUID) -> User:
    result = await session.execute(select(User).where(col(User.id) == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        msg = f"User {user_id} not found"
        raise NotFoundError(msg)
    return user


async def ensure_active_users(session: AsyncSession, *user_ids: uuid.UUID | None) -> None:
    """Raise ValidationError unless every given id names an active user."""
    wanted = {uid for uid in user_ids if uid is not None}
    if not wanted:
        return
    result = await session.execute(
        select(User.id).where(col(User.id).in_(sorted(wanted)), col(User.is_active).is_(True))
    )
    missing = wanted - set(result.scalars().all())
    if missing:
        msg = f"Unknown or inactive user(s): {', '.join(sorted(str(m) for m in missing))}"
        raise ValidationError(msg)


async def _ensure_department_exists(session: AsyncSession, department_id: uuid.UUID | None) -> None:
    if department_id is None:
        return
    result = await session.execute(select(Department.id).where(col(Department.id) == department_id))
    if result.scalar_one_or_none() is None:
        msg = f"Department {department_id} not found"
        raise ValidationError(msg)


async def create_user(session: AsyncSession, view: PermissionView, payload: UserCreate) -> UserResponse:
    """Create a user with a declared role (admin only)."""
    view.require(Capability.MANAGE_USERS)
    email = payload.email.lower()

    existing = await session.execute(select(User.id).where(func.lower(col(User.email)) == email))
    if existing.scalar_one_or_none() is not None:
        msg = f"A user with email {email} already exists"
        raise ConflictError(msg)
    await _ensure_department_exists(session, payload.department_id)

    user = User(
        full_name=payload.full_name,
        email=email,
        role=payload.role.value,
        department_id=payload.department_id,
    )
    session.add(user)
    await session.flush()

    await write_audit_log(
        session,
        actor_id=view.user_id,
        action=AuditAction.USER_CREATED,
        entity_type=AuditEntityType.USER,
        entity_id=user.id,
        details={"after": model_to_audit_dict(user)},
    )
    await session.commit()
    await session.refresh(user)
    return _build_user_response(user)


async def update_user(
    session: AsyncSession,
    view: PermissionView,
    user_id: uuid.UUID,
    payload: UserUpdate,
) -> UserResponse:
    """Change a user's name, declared role, home department or active flag."""
    view.require(Capability.MANAGE_USERS)
    user = await get_user_or_404(session, user_id)
    changes = payload.model_dump(exclude_unset=True)
    if "department_id" in changes:
        await _ensure_department_exists(session, changes["department_id"])

    before = model_to_audit_dict(user)
    for key, value in changes.items():
        setattr(user, key, value.value if isinstance(value, Role) else value)
    await session.flush()

    await write_audit_log(
        session,
        actor_id=view.user_id,
        action=AuditAction.USER_UPDATED,
        entity_type=AuditEntityType.USER,
        entity_id=user.id,
        details={"before": before, "after": model_to_audit_dict(user)},
    )
    await session.commit()
    await session.refresh(user)
    return _build_user_response(user)


async def list_users(
    session: AsyncSession,
    view: PermissionView,
    offset: int = 0,
    limit: int = 50,
) -> UserListResponse:
    view.require(Capability.MANAGE_USERS)
    count_result = await session.execute(select(func.count()).select_from(User))
    total = count_result.scalar_one()
    result = await session.execute(select(User).order_by(col(User.full_name)).offset(offset).limit(limit))
    return UserListResponse(items=[_build_user_response(u) for u in result.scalars().all()], total=total)
