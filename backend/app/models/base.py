from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

MONEY = sa.Numeric(14, 2)


def _uuid_factory() -> uuid.UUID:
    """Generate a new UUID v4."""
    return uuid.uuid4()


def now_utc() -> datetime:
    """Return the current UTC time."""
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to a naive timestamp read back from a backend without tz support."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def money_field(default: Decimal = Decimal(0), **kwargs: Any) -> Any:
    """Field for a NUMERIC(14, 2) amount."""
    return Field(default=default, sa_type=MONEY, **kwargs)  # ty: ignore[invalid-argument-type]


def user_fk(*, nullable: bool = True, index: bool = False) -> Any:
    """Field holding a foreign key to ``app_user.id``."""
    return Field(
        default=None,
        sa_column=sa.Column(sa.Uuid, sa.ForeignKey("app_user.id"), nullable=nullable, index=index),
    )


class UUIDBase(SQLModel):
    """Base model with UUID primary key."""

    id: uuid.UUID = Field(
        default_factory=_uuid_factory,
        primary_key=True,
        sa_type=sa.Uuid,
    )


class TimestampMixin(SQLModel):
    """Mixin that adds a created_at timestamp."""

    created_at: datetime = Field(
        default_factory=now_utc,
        sa_type=sa.DateTime(timezone=True),  # ty: ignore[invalid-argument-type]
        sa_column_kwargs={"server_default": sa.func.now()},
    )
