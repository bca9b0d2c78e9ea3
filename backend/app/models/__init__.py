from sqlmodel import SQLModel

from app.models.audit import AuditLog
from app.models.base import TimestampMixin, UUIDBase
from app.models.budget import BudgetAdjustment
from app.models.enums import (
    AdminRequestCategory,
    ApproverKind,
    AuditAction,
    AuditEntityType,
    Decision,
    RequestKind,
    RequestStatus,
    Role,
    StepStatus,
    StepType,
    TargetType,
    TripType,
)
from app.models.organization import Department, Project
from app.models.request import AdminRequest, TripRequest
from app.models.user import User
from app.models.workflow import WorkflowStep

__all__ = [
    "AdminRequest",
    "AdminRequestCategory",
    "ApproverKind",
    "AuditAction",
    "AuditEntityType",
    "AuditLog",
    "BudgetAdjustment",
    "Decision",
    "Department",
    "Project",
    "RequestKind",
    "RequestStatus",
    "Role",
    "SQLModel",
    "StepStatus",
    "StepType",
    "TargetType",
    "TimestampMixin",
    "TripRequest",
    "TripType",
    "UUIDBase",
    "User",
    "WorkflowStep",
]
