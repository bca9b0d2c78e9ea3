from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from app.config import get_settings
from app.exceptions import TransactionAbortedError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """Return the singleton async engine, creating it on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.database_url,
            echo=settings.debug,
            pool_pre_ping=True,
        )
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the singleton async session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            expire_on_commit=False,
        )
    return _session_factory


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency that yields an async database session."""
    factory = get_session_factory()
    async with factory() as session:
        yield session


SessionDep = Annotated[AsyncSession, Depends(get_session)]


@asynccontextmanager
async def transaction_deadline(session: AsyncSession, seconds: float | None = None) -> AsyncIterator[None]:
    """Bound the enclosed unit of work by a wall-clock deadline.

    On PostgreSQL the deadline is also pushed down as a transaction-local
    ``statement_timeout`` so a blocked lock wait aborts server-side. Expiry or a
    lock/statement timeout surfaces as a retryable ``TransactionAbortedError``.
    """
    timeout = seconds if seconds is not None else get_settings().transaction_timeout_seconds
    try:
        async with asyncio.timeout(timeout):
            if session.get_bind().dialect.name == "postgresql":
                await session.execute(text(f"SET LOCAL statement_timeout = {int(timeout * 1000)}"))
            yield
    except TimeoutError as exc:
        msg = f"Transaction exceeded {timeout:g}s and was aborted; retry the operation"
        raise TransactionAbortedError(msg) from exc
    except OperationalError as exc:
        msg = "Transaction was aborted by the database; retry the operation"
        raise TransactionAbortedError(msg) from exc


async def dispose_engine() -> None:
    """Dispose the engine and reset singletons. Call on app shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None
