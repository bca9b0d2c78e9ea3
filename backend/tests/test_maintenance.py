"""Tests for the scheduled bonus reset and project expiry sweep."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import select, update
from sqlmodel import col

from app.models.audit import AuditLog
from app.models.enums import AuditAction
from app.models.organization import Department, Project
from app.services import maintenance
from app.services.audit import SYSTEM_ACTOR
from app.services.maintenance import run_maintenance_sweep

if TYPE_CHECKING:
    from httpx import AsyncClient
    from sqlalchemy.ext.asyncio import AsyncSession

    from tests.conftest import Org

NOW = datetime(2026, 6, 15, 2, 0, tzinfo=UTC)


async def _give_bonus(session: AsyncSession, department: Department, amount: str, started: datetime) -> None:
    department.monthly_bonus = Decimal(amount)
    department.monthly_bonus_reset_at = started
    await session.commit()


async def _audit(session: AsyncSession, action: AuditAction) -> list[AuditLog]:
    result = await session.execute(select(AuditLog).where(col(AuditLog.action) == action.value))
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Bonus reset
# ---------------------------------------------------------------------------


async def test_lapsed_bonus_is_reset(db_session: AsyncSession, org: Org) -> None:
    await _give_bonus(db_session, org.department, "500.00", NOW - timedelta(days=62))

    result = await run_maintenance_sweep(db_session, NOW)

    assert result.bonus_resets == 1
    assert result.errors == 0
    await db_session.refresh(org.department)
    assert org.department.monthly_bonus == Decimal("0.00")
    assert org.department.monthly_bonus_reset_at is not None

    [entry] = await _audit(db_session, AuditAction.SYSTEM_MONTHLY_BONUS_RESET)
    assert entry.actor_id == SYSTEM_ACTOR
    assert entry.entity_id == org.department.id
    assert entry.details["previous_bonus"] == "500.00"


async def test_second_run_is_a_no_op(db_session: AsyncSession, org: Org) -> None:
    await _give_bonus(db_session, org.department, "500.00", NOW - timedelta(days=62))

    await run_maintenance_sweep(db_session, NOW)
    again = await run_maintenance_sweep(db_session, NOW)

    assert again.bonus_resets == 0
    assert again.expirations == 0
    assert len(await _audit(db_session, AuditAction.SYSTEM_MONTHLY_BONUS_RESET)) == 1


async def test_bonus_inside_window_is_kept(db_session: AsyncSession, org: Org) -> None:
    await _give_bonus(db_session, org.department, "500.00", NOW - timedelta(days=10))

    result = await run_maintenance_sweep(db_session, NOW)

    assert result.bonus_resets == 0
    assert result.skipped == 1
    await db_session.refresh(org.department)
    assert org.department.monthly_bonus == Decimal("500.00")


async def test_failed_reset_does_not_stop_the_sweep(
    db_session: AsyncSession,
    org: Org,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    research = Department(name="Research", budget=Decimal("2000.00"))
    db_session.add(research)
    await _give_bonus(db_session, research, "100.00", NOW - timedelta(days=40))
    await _give_bonus(db_session, org.department, "500.00", NOW - timedelta(days=40))

    real_reset = maintenance.reset_department_bonus
    broken_id = org.department.id

    async def flaky_reset(session: AsyncSession, department: Department, now: datetime) -> Decimal:
        if department.id == broken_id:
            msg = "lock timeout"
            raise RuntimeError(msg)
        return await real_reset(session, department, now)

    monkeypatch.setattr(maintenance, "reset_department_bonus", flaky_reset)

    result = await run_maintenance_sweep(db_session, NOW)

    assert result.errors == 1
    assert result.bonus_resets == 1
    await db_session.refresh(research)
    assert research.monthly_bonus == Decimal("0.00")
    await db_session.refresh(org.department)
    assert org.department.monthly_bonus == Decimal("500.00")


async def test_bonus_granted_during_sweep_is_kept(
    db_session: AsyncSession,
    org: Org,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    await _give_bonus(db_session, org.department, "500.00", NOW - timedelta(days=62))
    regranted_at = NOW - timedelta(hours=1)
    real_reset = maintenance.reset_department_bonus

    async def regrant_then_reset(session: AsyncSession, department: Department, now: datetime) -> Decimal | None:
        # Another transaction grants a fresh bonus after the sweep read the row.
        await session.execute(
            update(Department)
            .where(col(Department.id) == department.id)
            .values(monthly_bonus=Decimal("999.00"), monthly_bonus_reset_at=regranted_at)
            .execution_options(synchronize_session=False)
        )
        return await real_reset(session, department, now)

    monkeypatch.setattr(maintenance, "reset_department_bonus", regrant_then_reset)

    result = await run_maintenance_sweep(db_session, NOW)

    assert result.bonus_resets == 0
    assert result.skipped == 1
    await db_session.refresh(org.department)
    assert org.department.monthly_bonus == Decimal("999.00")
    assert await _audit(db_session, AuditAction.SYSTEM_MONTHLY_BONUS_RESET) == []


async def test_sweep_reports_reset_details(db_session: AsyncSession, org: Org) -> None:
    await _give_bonus(db_session, org.department, "500.00", NOW - timedelta(days=62))

    response = (await run_maintenance_sweep(db_session, NOW)).to_response()

    assert response.details == [{"department_id": str(org.department.id), "previous_bonus": "500.00"}]


# ---------------------------------------------------------------------------
# Project expiry
# ---------------------------------------------------------------------------


async def test_expired_project_is_deactivated(db_session: AsyncSession, org: Org) -> None:
    expired = await org.add_project("Old Survey", "1000.00", expiry_date=date(2026, 6, 1))

    result = await run_maintenance_sweep(db_session, NOW)

    assert result.expirations == 1
    await db_session.refresh(expired)
    await db_session.refresh(org.project)
    assert expired.is_active is False
    assert org.project.is_active is True

    [entry] = await _audit(db_session, AuditAction.SYSTEM_PROJECT_EXPIRATION)
    assert entry.entity_id == expired.id
    assert entry.details["expiry_date"] == "2026-06-01"


async def test_project_deactivated_during_sweep_is_not_audited(
    db_session: AsyncSession,
    org: Org,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    await org.add_project("Old Survey", "1000.00", expiry_date=date(2026, 6, 1))
    real_expire = maintenance.expire_project

    async def deactivate_then_expire(session: AsyncSession, project: Project, now: datetime) -> bool:
        await session.execute(
            update(Project)
            .where(col(Project.id) == project.id)
            .values(is_active=False)
            .execution_options(synchronize_session=False)
        )
        return await real_expire(session, project, now)

    monkeypatch.setattr(maintenance, "expire_project", deactivate_then_expire)

    result = await run_maintenance_sweep(db_session, NOW)

    assert result.expirations == 0
    assert await _audit(db_session, AuditAction.SYSTEM_PROJECT_EXPIRATION) == []


async def test_project_expiring_today_stays_active(db_session: AsyncSession, org: Org) -> None:
    await org.add_project("Last Day", "1000.00", expiry_date=NOW.date())

    result = await run_maintenance_sweep(db_session, NOW)

    assert result.expirations == 0


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


async def test_sweep_endpoint_requires_admin(async_client: AsyncClient, org: Org) -> None:
    resp = await async_client.post("/maintenance/sweep", headers=org.headers(org.finance))
    assert resp.status_code == 403

    resp = await async_client.post("/maintenance/sweep", headers=org.headers(org.admin))
    assert resp.status_code == 200
    data = resp.json()
    assert data["bonus_resets"] == 0
    assert data["errors"] == 0
