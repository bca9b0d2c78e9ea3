# ruff: noqa: TC001, TC003
from __future__ import annotations

import uuid

from pydantic import BaseModel

from app.models.enums import Role


class AuthContext(BaseModel):
    """Caller identity resolved once per HTTP call and passed explicitly to services."""

    user_id: uuid.UUID
    declared_role: Role
    active_role: Role | None = None

    @property
    def effective_role(self) -> Role:
        return self.active_role if self.active_role is not None else self.declared_role
