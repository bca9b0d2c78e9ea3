# ruff: noqa: B008, TC001, TC003
from __future__ import annotations

import uuid

from fastapi import APIRouter, Query, status

from app.api.deps import ViewDep
from app.db import SessionDep
from app.schemas.organization import UserCreate, UserListResponse, UserResponse, UserUpdate
from app.services import user as user_service

users_router = APIRouter(prefix="/users", tags=["users"])


@users_router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(payload: UserCreate, session: SessionDep, view: ViewDep) -> UserResponse:
    """Create a user (admin only)."""
    return await user_service.create_user(session, view, payload)


@users_router.get("", response_model=UserListResponse)
async def list_users(
    session: SessionDep,
    view: ViewDep,
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
) -> UserListResponse:
    """List users (admin only)."""
    return await user_service.list_users(session, view, offset, limit)


@users_router.patch("/{user_id}", response_model=UserResponse)
async def update_user(user_id: uuid.UUID, payload: UserUpdate, session: SessionDep, view: ViewDep) -> UserResponse:
    """Update a user's role, department or active flag (admin only)."""
    return await user_service.update_user(session, view, user_id, payload)
