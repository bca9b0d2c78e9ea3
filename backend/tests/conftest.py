from __future__ import annotations

import os
import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from app.db import get_session
from app.main import app
from app.models import Department, Project, SQLModel, User
from app.models.enums import Role

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine

TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", "sqlite+aiosqlite://")


def _enable_sqlite_savepoints(engine: AsyncEngine) -> None:
    """Let SQLAlchemy, not pysqlite, emit BEGIN so SAVEPOINTs nest correctly."""

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, _record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")


@pytest.fixture
async def engine() -> AsyncIterator[AsyncEngine]:
    """Create an engine with a fresh schema.

    Defaults to in-memory SQLite; set TEST_DATABASE_URL to run against
    PostgreSQL, where row locks and statement timeouts are real.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        _engine = create_async_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        _enable_sqlite_savepoints(_engine)
    else:
        _engine = create_async_engine(TEST_DATABASE_URL)

    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield _engine
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.drop_all)
    await _engine.dispose()


@pytest.fixture
async def db_session(engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Yield a database session wrapped in a transaction that rolls back after each test.

    Service-level commits release a SAVEPOINT instead of committing the outer
    transaction.
    """
    async with engine.connect() as conn:
        txn = await conn.begin()
        session = AsyncSession(bind=conn, expire_on_commit=False, join_transaction_mode="create_savepoint")
        yield session
        await session.close()
        await txn.rollback()


@pytest.fixture
async def async_client(db_session: AsyncSession) -> AsyncIterator[AsyncClient]:
    """Async HTTP client with the database session dependency overridden."""

    async def _override_get_session() -> AsyncIterator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_session] = _override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Organization fixture
# ---------------------------------------------------------------------------


def auth_headers(user: User, active_role: Role | None = None) -> dict[str, str]:
    """Identity headers for ``user``, optionally acting under a lower role."""
    headers = {"X-User-Id": str(user.id)}
    if active_role is not None:
        headers["X-Active-Role"] = active_role.value
    return headers


@dataclass
class Org:
    """A small organization: one department, one project and a user per role."""

    session: AsyncSession
    admin: User
    finance: User
    department_manager: User
    project_manager: User
    employee: User
    other_employee: User
    department: Department
    project: Project

    def headers(self, user: User, active_role: Role | None = None) -> dict[str, str]:
        return auth_headers(user, active_role)

    async def add_user(self, name: str, role: Role = Role.EMPLOYEE, department_id: uuid.UUID | None = None) -> User:
        user = User(
            full_name=name,
            email=f"{name.lower().replace(' ', '.')}.{uuid.uuid4().hex[:8]}@example.com",
            role=role.value,
            department_id=department_id,
        )
        self.session.add(user)
        await self.session.commit()
        return user

    async def add_project(
        self,
        name: str,
        budget: Decimal | str,
        *,
        manager: User | None = None,
        expiry_date: date | None = None,
    ) -> Project:
        project = Project(
            name=name,
            budget=Decimal(budget),
            original_budget=Decimal(budget),
            department_id=self.department.id,
            manager_id=(manager or self.project_manager).id,
            expiry_date=expiry_date,
        )
        self.session.add(project)
        await self.session.commit()
        return project


@pytest.fixture
async def org(db_session: AsyncSession) -> Org:
    """Seed users, a department and a project directly in the database."""
    users: dict[str, User] = {}
    for key, name, role in (
        ("admin", "Ada Admin", Role.ADMIN),
        ("finance", "Fiona Finance", Role.FINANCE),
        ("department_manager", "Dora Manager", Role.MANAGER),
        ("project_manager", "Pete Manager", Role.MANAGER),
        ("employee", "Carol Employee", Role.EMPLOYEE),
        ("other_employee", "Dave Employee", Role.EMPLOYEE),
    ):
        users[key] = User(full_name=name, email=f"{key}@example.com", role=role.value)
    db_session.add_all(users.values())
    await db_session.flush()

    department = Department(
        name="Field Operations",
        budget=Decimal("10000.00"),
        manager_id=users["department_manager"].id,
    )
    db_session.add(department)
    await db_session.flush()

    users["employee"].department_id = department.id
    users["other_employee"].department_id = department.id

    project = Project(
        name="Coastal Survey",
        budget=Decimal("600.00"),
        original_budget=Decimal("600.00"),
        department_id=department.id,
        manager_id=users["project_manager"].id,
        expiry_date=date.today() + timedelta(days=90),
    )
    db_session.add(project)
    await db_session.commit()

    return Org(session=db_session, department=department, project=project, **users)
