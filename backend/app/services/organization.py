"""Organizational graph reader.

Read-only snapshot of who manages which department and project. Permission and
workflow decisions take the snapshot as an explicit argument so they can be
evaluated against a fixture graph without a database.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlalchemy import select

from app.models.organization import Department, Project

if TYPE_CHECKING:
    import uuid
    from datetime import date

    from sqlalchemy.ext.asyncio import AsyncSession


@dataclass(frozen=True)
class DepartmentNode:
    """Manager slots and status of one department."""

    id: uuid.UUID
    name: str
    manager_ids: tuple[uuid.UUID, ...] = ()
    is_active: bool = True

    @property
    def primary_manager_id(self) -> uuid.UUID | None:
        return self.manager_ids[0] if self.manager_ids else None


@dataclass(frozen=True)
class ProjectNode:
    """Manager slots, owning department and lifetime of one project."""

    id: uuid.UUID
    department_id: uuid.UUID
    manager_ids: tuple[uuid.UUID, ...] = ()
    is_active: bool = True
    expiry_date: date | None = None

    @property
    def primary_manager_id(self) -> uuid.UUID | None:
        return self.manager_ids[0] if self.manager_ids else None

    def is_expired(self, today: date) -> bool:
        return self.expiry_date is not None and self.expiry_date < today


@dataclass(frozen=True)
class OrgGraph:
    """Point-in-time view of department and project manager relationships."""

    departments: dict[uuid.UUID, DepartmentNode] = field(default_factory=dict)
    projects: dict[uuid.UUID, ProjectNode] = field(default_factory=dict)

    def department(self, department_id: uuid.UUID | None) -> DepartmentNode | None:
        if department_id is None:
            return None
        return self.departments.get(department_id)

    def project(self, project_id: uuid.UUID | None) -> ProjectNode | None:
        if project_id is None:
            return None
        return self.projects.get(project_id)

    def departments_managed_by(self, user_id: uuid.UUID) -> frozenset[uuid.UUID]:
        """Departments listing the user in any of their three manager slots."""
        return frozenset(d.id for d in self.departments.values() if user_id in d.manager_ids)

    def projects_managed_by(self, user_id: uuid.UUID) -> frozenset[uuid.UUID]:
        """Projects listing the user in either manager slot."""
        return frozenset(p.id for p in self.projects.values() if user_id in p.manager_ids)


async def load_org_graph(session: AsyncSession) -> OrgGraph:
    """Read the current manager relationships of every department and project."""
    dept_result = await session.execute(select(Department))
    project_result = await session.execute(select(Project))

    departments = {
        d.id: DepartmentNode(id=d.id, name=d.name, manager_ids=d.manager_ids, is_active=d.is_active)
        for d in dept_result.scalars().all()
    }
    projects = {
        p.id: ProjectNode(
            id=p.id,
            department_id=p.department_id,
            manager_ids=p.manager_ids,
            is_active=p.is_active,
            expiry_date=p.expiry_date,
        )
        for p in project_result.scalars().all()
    }
    return OrgGraph(departments=departments, projects=projects)
