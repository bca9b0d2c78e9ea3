"""Scheduled maintenance jobs.

Bonus reset: zero every department bonus whose window (one calendar month from
its start, by default) has lapsed, and restart the window at the run time so a
second run finds nothing to do.
Project expiry: deactivate active projects whose expiry date has passed.

Each department or project is handled in its own SAVEPOINT; a failure is logged
and counted without aborting the rest of the sweep. Both writes are conditional
on the row state the sweep read, so overlapping sweeps act on a row once and a
bonus granted mid-sweep survives.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import select, update
from sqlmodel import col

from app.models.base import now_utc
from app.models.enums import AuditAction, AuditEntityType
from app.models.organization import Department, Project
from app.schemas.report import MaintenanceRunResponse
from app.services.audit import SYSTEM_ACTOR, write_audit_log
from app.services.budget import bonus_expires_at, to_money

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


@dataclass
class MaintenanceRunResult:
    """Result of a maintenance sweep."""

    run_at: datetime
    bonus_resets: int = 0
    expirations: int = 0
    skipped: int = 0
    errors: int = 0
    details: list[dict[str, str]] = field(default_factory=list)

    def to_response(self) -> MaintenanceRunResponse:
        return MaintenanceRunResponse(
            run_date=self.run_at.date(),
            bonus_resets=self.bonus_resets,
            expirations=self.expirations,
            skipped=self.skipped,
            errors=self.errors,
            details=self.details,
        )


# ---------------------------------------------------------------------------
# Per-item actions
# ---------------------------------------------------------------------------


async def reset_department_bonus(
    session: AsyncSession,
    department: Department,
    now: datetime,
    actor_id: uuid.UUID = SYSTEM_ACTOR,
) -> Decimal | None:
    """Zero the bonus, restart its window at ``now`` and audit.

    The write only applies while the row still carries the window start the
    sweep read. A bonus granted or reset since then leaves the row untouched
    and returns None; otherwise the previous bonus is returned.
    """
    seen_reset_at = department.monthly_bonus_reset_at
    previous = to_money(department.monthly_bonus)
    outcome = await session.execute(
        update(Department)
        .where(
            col(Department.id) == department.id,
            col(Department.monthly_bonus_reset_at) == seen_reset_at,
        )
        .values(monthly_bonus=Decimal(0), monthly_bonus_reset_at=now)
        .execution_options(synchronize_session=False)
    )
    if outcome.rowcount == 0:
        return None
    await session.refresh(department)

    await write_audit_log(
        session,
        actor_id=actor_id,
        action=AuditAction.SYSTEM_MONTHLY_BONUS_RESET,
        entity_type=AuditEntityType.DEPARTMENT,
        entity_id=department.id,
        details={
            "department_id": department.id,
            "department_name": department.name,
            "previous_bonus": previous,
            "reset_at": now,
        },
    )
    return previous


async def expire_project(
    session: AsyncSession,
    project: Project,
    now: datetime,
    actor_id: uuid.UUID = SYSTEM_ACTOR,
) -> bool:
    """Deactivate the project and audit. Returns False when it was already inactive."""
    outcome = await session.execute(
        update(Project)
        .where(col(Project.id) == project.id, col(Project.is_active).is_(True))
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    if outcome.rowcount == 0:
        return False
    await session.refresh(project)

    await write_audit_log(
        session,
        actor_id=actor_id,
        action=AuditAction.SYSTEM_PROJECT_EXPIRATION,
        entity_type=AuditEntityType.PROJECT,
        entity_id=project.id,
        details={
            "project_id": project.id,
            "project_name": project.name,
            "expiry_date": project.expiry_date,
            "deactivated_at": now,
        },
    )
    return True


# ---------------------------------------------------------------------------
# Sweeps
# ---------------------------------------------------------------------------


async def run_bonus_resets(session: AsyncSession, now: datetime, result: MaintenanceRunResult) -> None:
    query = select(Department).where(col(Department.monthly_bonus) != 0).order_by(col(Department.name))
    departments = list((await session.execute(query)).scalars().all())

    for department in departments:
        department_id = department.id
        expires_at = bonus_expires_at(department)
        if expires_at is None or now < expires_at:
            result.skipped += 1
            continue
        try:
            async with session.begin_nested():
                previous = await reset_department_bonus(session, department, now)
        except Exception:
            logger.exception("Bonus reset failed for department %s", department_id)
            result.errors += 1
            continue
        if previous is None:
            logger.info("Bonus of department %s changed during the sweep; left as is", department_id)
            result.skipped += 1
            continue
        # Commit per item so no row lock outlives its own reset.
        await session.commit()
        result.bonus_resets += 1
        result.details.append({"department_id": str(department_id), "previous_bonus": str(previous)})


async def run_project_expirations(session: AsyncSession, now: datetime, result: MaintenanceRunResult) -> None:
    query = (
        select(Project)
        .where(
            col(Project.is_active).is_(True),
            col(Project.expiry_date).is_not(None),
            col(Project.expiry_date) < now.date(),
        )
        .order_by(col(Project.expiry_date))
    )
    projects = list((await session.execute(query)).scalars().all())

    for project in projects:
        project_id, expiry_date = project.id, project.expiry_date
        try:
            async with session.begin_nested():
                expired = await expire_project(session, project, now)
        except Exception:
            logger.exception("Expiry deactivation failed for project %s", project_id)
            result.errors += 1
            continue
        if not expired:
            result.skipped += 1
            continue
        await session.commit()
        result.expirations += 1
        result.details.append({"project_id": str(project_id), "expiry_date": str(expiry_date)})


async def run_maintenance_sweep(session: AsyncSession, now: datetime | None = None) -> MaintenanceRunResult:
    """Run the bonus reset and project expiry jobs and commit.

    Rows are only written when they change, so a repeated run is a no-op.
    """
    now = now or now_utc()
    result = MaintenanceRunResult(run_at=now)

    await run_bonus_resets(session, now, result)
    await run_project_expirations(session, now, result)
    await session.commit()

    logger.info(
        "Maintenance sweep at %s: bonus_resets=%d expirations=%d skipped=%d errors=%d",
        now.isoformat(),
        result.bonus_resets,
        result.expirations,
        result.skipped,
        result.errors,
    )
    return result
