# ruff: noqa: TC003
from __future__ import annotations

import uuid

import sqlalchemy as sa
from sqlmodel import Field

from app.models.base import TimestampMixin, UUIDBase
from app.models.enums import Role


class User(UUIDBase, TimestampMixin, table=True):
    """A person who raises or decides requests. The declared role lives here."""

    __tablename__ = "app_user"

    full_name: str = Field(max_length=255)
    email: str = Field(max_length=255, sa_column_kwargs={"unique": True})
    role: str = Field(default=Role.EMPLOYEE, max_length=20, sa_column_kwargs={"server_default": "EMPLOYEE"})
    department_id: uuid.UUID | None = Field(default=None, index=True)
    is_active: bool = Field(default=True, sa_column_kwargs={"server_default": sa.true()})
