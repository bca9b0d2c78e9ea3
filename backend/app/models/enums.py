from __future__ import annotations

import enum


class Role(enum.StrEnum):
    """Declared or effective role of a user, lowest privilege first."""

    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    FINANCE = "FINANCE"
    ADMIN = "ADMIN"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    @property
    def is_system_wide(self) -> bool:
        """FINANCE and ADMIN see and decide every request."""
        return self in (Role.FINANCE, Role.ADMIN)


_ROLE_RANK = {Role.EMPLOYEE: 0, Role.MANAGER: 1, Role.FINANCE: 2, Role.ADMIN: 3}


class RequestStatus(enum.StrEnum):
    """Lifecycle of trip and administrative requests."""

    PENDING_DEPARTMENT_APPROVAL = "PENDING_DEPARTMENT_APPROVAL"
    PENDING_PROJECT_APPROVAL = "PENDING_PROJECT_APPROVAL"
    PENDING_FINANCE_APPROVAL = "PENDING_FINANCE_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"

    @property
    def is_pending(self) -> bool:
        return self in PENDING_STATUSES


PENDING_STATUSES = frozenset(
    {
        RequestStatus.PENDING_DEPARTMENT_APPROVAL,
        RequestStatus.PENDING_PROJECT_APPROVAL,
        RequestStatus.PENDING_FINANCE_APPROVAL,
    }
)

# Statuses whose cost counts against a project or department budget.
ALLOCATED_STATUSES = PENDING_STATUSES | {RequestStatus.APPROVED, RequestStatus.PAID}


class TripType(enum.StrEnum):
    """Trip category. URGENT skips department approval and carries no budget impact."""

    ROUTINE = "ROUTINE"
    TICKETED = "TICKETED"
    URGENT = "URGENT"


class StepType(enum.StrEnum):
    """Kind of approval stage in a trip's workflow."""

    DEPARTMENT_APPROVAL = "DEPARTMENT_APPROVAL"
    PROJECT_MANAGER_APPROVAL = "PROJECT_MANAGER_APPROVAL"
    FINANCE_APPROVAL = "FINANCE_APPROVAL"


class StepStatus(enum.StrEnum):
    """Status of a single workflow step."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SKIPPED = "SKIPPED"


class ApproverKind(enum.StrEnum):
    """How a workflow step's approver is resolved."""

    ASSIGNED = "ASSIGNED"
    ROLE_GATED = "ROLE_GATED"


class AdminRequestCategory(enum.StrEnum):
    """Category of an administrative request."""

    BUDGET_INCREASE = "BUDGET_INCREASE"
    NEW_PROJECT = "NEW_PROJECT"
    NEW_DEPARTMENT = "NEW_DEPARTMENT"
    OTHER = "OTHER"


class TargetType(enum.StrEnum):
    """What an administrative request targets."""

    DEPARTMENT = "DEPARTMENT"
    PROJECT = "PROJECT"


class RequestKind(enum.StrEnum):
    """Which request table a decision applies to."""

    TRIP = "TRIP"
    ADMINISTRATIVE = "ADMINISTRATIVE"


class Decision(enum.StrEnum):
    """Approve or reject, applied to a single request or uniformly to a batch."""

    APPROVE = "APPROVE"
    REJECT = "REJECT"


class AuditEntityType(enum.StrEnum):
    """Entity type recorded in the audit log."""

    USER = "USER"
    DEPARTMENT = "DEPARTMENT"
    PROJECT = "PROJECT"
    TRIP_REQUEST = "TRIP_REQUEST"
    ADMIN_REQUEST = "ADMIN_REQUEST"
    SYSTEM = "SYSTEM"


class AuditAction(enum.StrEnum):
    """Action code recorded in the audit log."""

    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    DEPARTMENT_CREATED = "DEPARTMENT_CREATED"
    DEPARTMENT_UPDATED = "DEPARTMENT_UPDATED"
    DEPARTMENT_BONUS_SET = "DEPARTMENT_BONUS_SET"
    PROJECT_CREATED = "PROJECT_CREATED"
    PROJECT_UPDATED = "PROJECT_UPDATED"
    BUDGET_ADJUSTMENT_CREATED = "BUDGET_ADJUSTMENT_CREATED"
    TRIP_REQUEST_CREATED = "TRIP_REQUEST_CREATED"
    TRIP_REQUEST_APPROVED = "TRIP_REQUEST_APPROVED"
    TRIP_REQUEST_REJECTED = "TRIP_REQUEST_REJECTED"
    TRIP_REQUEST_CANCELLED = "TRIP_REQUEST_CANCELLED"
    TRIP_REQUEST_MARKED_PAID = "TRIP_REQUEST_MARKED_PAID"
    ADMIN_REQUEST_CREATED = "ADMIN_REQUEST_CREATED"
    ADMIN_REQUEST_APPROVED = "ADMIN_REQUEST_APPROVED"
    ADMIN_REQUEST_REJECTED = "ADMIN_REQUEST_REJECTED"
    ADMIN_REQUEST_CANCELLED = "ADMIN_REQUEST_CANCELLED"
    BULK_APPROVAL_COMPLETED = "BULK_APPROVAL_COMPLETED"
    BULK_REJECTION_COMPLETED = "BULK_REJECTION_COMPLETED"
    BULK_PAYMENT_PROCESSED = "BULK_PAYMENT_PROCESSED"
    SYSTEM_MONTHLY_BONUS_RESET = "SYSTEM_MONTHLY_BONUS_RESET"
    SYSTEM_PROJECT_EXPIRATION = "SYSTEM_PROJECT_EXPIRATION"
