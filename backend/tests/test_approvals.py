"""Tests for the approval coordinator: single decisions, budget enforcement,
overrides, all-or-nothing bulk decisions, administrative requests and payments.
"""

from __future__ import annotations

import asyncio
import uuid
from decimal import Decimal
from typing import TYPE_CHECKING, Any

import pytest
from sqlalchemy import select
from sqlmodel import col

from app.config import get_settings
from app.models.audit import AuditLog
from app.models.enums import AuditAction
from app.services import approval

if TYPE_CHECKING:
    from httpx import AsyncClient, Response

    from app.models.user import User
    from tests.conftest import Org

TRIPS_URL = "/trip-requests"
ADMIN_URL = "/admin-requests"
BULK_URL = "/approvals/bulk"
PAYMENTS_URL = "/payments/bulk"


# ---------------------------------------------------------------------------
# Test helpers
# ---------------------------------------------------------------------------


async def _create_trip(
    client: AsyncClient,
    org: Org,
    cost: str,
    *,
    requester: User | None = None,
    trip_type: str = "ROUTINE",
    project_id: uuid.UUID | None = None,
) -> dict[str, Any]:
    body: dict[str, Any] = {
        "trip_type": trip_type,
        "trip_date": "2026-11-20",
        "origin": "Harbor Office",
        "destination": "North Beach",
        "purpose": "Survey",
        "cost": cost,
        "project_id": str(project_id or org.project.id),
    }
    resp = await client.post(TRIPS_URL, json=body, headers=org.headers(requester or org.employee))
    assert resp.status_code == 201, resp.text
    result: dict[str, Any] = resp.json()
    return result


async def _decide(
    client: AsyncClient, org: Org, trip_id: str, user: User, action: str = "approve", **body: Any
) -> Response:
    return await client.post(f"{TRIPS_URL}/{trip_id}/{action}", json=body or None, headers=org.headers(user))


async def _advance_to_project_step(client: AsyncClient, org: Org, trip_id: str) -> None:
    resp = await _decide(client, org, trip_id, org.department_manager)
    assert resp.status_code == 200, resp.text
    assert resp.json()["status"] == "PENDING_PROJECT_APPROVAL"


async def _approve_fully(client: AsyncClient, org: Org, trip_id: str) -> dict[str, Any]:
    await _advance_to_project_step(client, org, trip_id)
    resp = await _decide(client, org, trip_id, org.project_manager)
    assert resp.status_code == 200, resp.text
    resp = await _decide(client, org, trip_id, org.finance)
    assert resp.status_code == 200, resp.text
    result: dict[str, Any] = resp.json()
    return result


async def _audit_entries(org: Org, action: AuditAction, entity_id: str | None = None) -> list[AuditLog]:
    query = select(AuditLog).where(col(AuditLog.action) == action.value)
    if entity_id is not None:
        query = query.where(col(AuditLog.entity_id) == uuid.UUID(entity_id))
    return list((await org.session.execute(query)).scalars().all())


async def _available(client: AsyncClient, org: Org, cost: str, exclude: str | None = None) -> Decimal:
    params = {"cost": cost}
    if exclude is not None:
        params["exclude_request_id"] = exclude
    resp = await client.get(
        f"/projects/{org.project.id}/budget-check", params=params, headers=org.headers(org.finance)
    )
    return Decimal(resp.json()["available_budget"])


# ---------------------------------------------------------------------------
# Single decisions
# ---------------------------------------------------------------------------


async def test_trip_approved_through_every_step(async_client: AsyncClient, org: Org) -> None:
    trip = await _create_trip(async_client, org, "450.00")
    assert trip["status"] == "PENDING_DEPARTMENT_APPROVAL"

    data = await _approve_fully(async_client, org, trip["id"])

    assert data["status"] == "APPROVED"
    assert [s["status"] for s in data["workflow_steps"]] == ["APPROVED", "APPROVED", "APPROVED"]
    assert data["workflow_steps"][2]["decided_by"] == str(org.finance.id)
    assert len(await _audit_entries(org, AuditAction.TRIP_REQUEST_APPROVED, trip["id"])) == 3


async def test_decision_reason_recorded_on_step(async_client: AsyncClient, org: Org) -> None:
    trip = await _create_trip(async_client, org, "100.00")
    resp = await _decide(async_client, org, trip["id"], org.department_manager, reason="Within plan")
    assert resp.json()["workflow_steps"][0]["decision_note"] == "Within plan"


async def test_wrong_approver_forbidden(async_client: AsyncClient, org: Org) -> None:
    """The project manager cannot jump ahead and decide the department step."""
    trip = await _create_trip(async_client, org, "100.00")

    resp = await _decide(async_client, org, trip["id"], org.project_manager)

    assert resp.status_code == 403
    assert resp.json()["request_id"] == trip["id"]


async def test_employee_cannot_approve_own_trip(async_client: AsyncClient, org: Org) -> None:
    trip = await _create_trip(async_client, org, "100.00")
    resp = await _decide(async_client, org, trip["id"], org.employee)
    assert resp.status_code == 403


async def test_admin_override_is_audited(async_client: AsyncClient, org: Org) -> None:
    trip = await _create_trip(async_client, org, "100.00")

    resp = await _decide(async_client, org, trip["id"], org.admin)

    assert resp.status_code == 200
    assert resp.json()["status"] == "PENDING_PROJECT_APPROVAL"
    [entry] = await _audit_entries(org, AuditAction.TRIP_REQUEST_APPROVED, trip["id"])
    assert entry.details["override"] is True
    assert entry.details["step_type"] == "DEPARTMENT_APPROVAL"


async def test_decided_trip_conflicts(async_client: AsyncClient, org: Org) -> None:
    trip = await _create_trip(async_client, org, "100.00")
    resp = await _decide(async_client, org, trip["id"], org.department_manager, "reject", reason="No")
    assert resp.status_code == 200

    resp = await _decide(async_client, org, trip["id"], org.admin)
    assert resp.status_code == 409


async def test_unknown_trip_not_found(async_client: AsyncClient, org: Org) -> None:
    resp = await _decide(async_client, org, str(uuid.uuid4()), org.admin)
    assert resp.status_code == 404


async def test_rejection_skips_remaining_steps(async_client: AsyncClient, org: Org) -> None:
    trip = await _create_trip(async_client, org, "100.00")

    resp = await _decide(async_client, org, trip["id"], org.department_manager, "reject", reason="Over plan")

    data = resp.json()
    assert data["status"] == "REJECTED"
    assert data["rejection_reason"] == "Over plan"
    assert [s["status"] for s in data["workflow_steps"]] == ["REJECTED", "SKIPPED", "SKIPPED"]


# ---------------------------------------------------------------------------
# Budget enforcement
# ---------------------------------------------------------------------------


async def test_budget_exceeded_blocks_project_approval(async_client: AsyncClient, org: Org) -> None:
    """600 budget with 200 already allocated: approving 450 fails by 50 and changes nothing."""
    await _create_trip(async_client, org, "200.00", requester=org.other_employee)
    trip = await _create_trip(async_client, org, "450.00")
    await _advance_to_project_step(async_client, org, trip["id"])

    resp = await _decide(async_client, org, trip["id"], org.project_manager)

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "BudgetExceededError"
    assert Decimal(body["budget_excess"]) == Decimal("50.00")
    assert body["request_id"] == trip["id"]

    resp = await async_client.get(f"{TRIPS_URL}/{trip['id']}", headers=org.headers(org.finance))
    data = resp.json()
    assert data["status"] == "PENDING_PROJECT_APPROVAL"
    assert data["workflow_steps"][1]["status"] == "PENDING"
    approvals = await _audit_entries(org, AuditAction.TRIP_REQUEST_APPROVED, trip["id"])
    assert len(approvals) == 1


async def test_budget_audit_records_check(async_client: AsyncClient, org: Org) -> None:
    trip = await _create_trip(async_client, org, "450.00")
    await _advance_to_project_step(async_client, org, trip["id"])

    resp = await _decide(async_client, org, trip["id"], org.project_manager)

    assert resp.status_code == 200
    entries = await _audit_entries(org, AuditAction.TRIP_REQUEST_APPROVED, trip["id"])
    pm_entry = next(e for e in entries if e.details["step_type"] == "PROJECT_MANAGER_APPROVAL")
    assert pm_entry.details["budget"]["available_budget"] == "600.00"


async def test_rejection_restores_availability(async_client: AsyncClient, org: Org) -> None:
    trip = await _create_trip(async_client, org, "450.00")
    before = await _available(async_client, org, "450.00", exclude=trip["id"])

    await _advance_to_project_step(async_client, org, trip["id"])
    resp = await _decide(async_client, org, trip["id"], org.project_manager)
    assert resp.status_code == 200
    assert await _available(async_client, org, "1.00") == Decimal("150.00")

    resp = await _decide(async_client, org, trip["id"], org.finance, "reject", reason="Cancelled survey")
    assert resp.status_code == 200

    assert await _available(async_client, org, "1.00") == before
    [entry] = await _audit_entries(org, AuditAction.TRIP_REQUEST_REJECTED, trip["id"])
    assert entry.details["released"] == "450.00"


async def test_urgent_trip_bypasses_budget(async_client: AsyncClient, org: Org) -> None:
    trip = await _create_trip(async_client, org, "5000.00", trip_type="URGENT")
    assert trip["status"] == "PENDING_PROJECT_APPROVAL"
    assert len(trip["workflow_steps"]) == 2

    resp = await _decide(async_client, org, trip["id"], org.project_manager)
    assert resp.status_code == 200
    assert resp.json()["status"] == "PENDING_FINANCE_APPROVAL"


# ---------------------------------------------------------------------------
# Bulk decisions
# ---------------------------------------------------------------------------


async def test_bulk_approval_applies_every_request(async_client: AsyncClient, org: Org) -> None:
    first = await _create_trip(async_client, org, "100.00")
    second = await _create_trip(async_client, org, "200.00", requester=org.other_employee)
    for trip in (first, second):
        await _advance_to_project_step(async_client, org, trip["id"])

    resp = await async_client.post(
        BULK_URL,
        json={"request_type": "TRIP", "request_ids": [first["id"], second["id"]], "decision": "APPROVE"},
        headers=org.headers(org.project_manager),
    )

    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["count"] == 2
    assert {r["status"] for r in data["results"]} == {"PENDING_FINANCE_APPROVAL"}
    assert Decimal(data["budget_impact"]["allocations"]) == Decimal("300.00")
    assert Decimal(data["budget_impact"]["deallocations"]) == Decimal("0.00")

    [summary] = await _audit_entries(org, AuditAction.BULK_APPROVAL_COMPLETED)
    assert summary.details["total_requests"] == 2
    entries = await _audit_entries(org, AuditAction.TRIP_REQUEST_APPROVED, first["id"])
    assert any(e.details.get("bulk_action") for e in entries)


async def test_bulk_approval_is_all_or_nothing(async_client: AsyncClient, org: Org) -> None:
    """One request over budget aborts the batch and names the offender."""
    roomy = await org.add_project("Harbor Refit", "5000.00")
    fits = await _create_trip(async_client, org, "100.00", project_id=roomy.id)
    too_big = await _create_trip(async_client, org, "650.00", requester=org.other_employee)
    for trip in (fits, too_big):
        await _advance_to_project_step(async_client, org, trip["id"])

    resp = await async_client.post(
        BULK_URL,
        json={"request_type": "TRIP", "request_ids": [fits["id"], too_big["id"]], "decision": "APPROVE"},
        headers=org.headers(org.project_manager),
    )

    assert resp.status_code == 400
    body = resp.json()
    assert body["request_id"] == too_big["id"]
    assert Decimal(body["budget_excess"]) == Decimal("50.00")

    for trip in (fits, too_big):
        resp = await async_client.get(f"{TRIPS_URL}/{trip['id']}", headers=org.headers(org.finance))
        assert resp.json()["status"] == "PENDING_PROJECT_APPROVAL"
    assert await _audit_entries(org, AuditAction.BULK_APPROVAL_COMPLETED) == []


async def test_bulk_permission_failure_aborts_batch(async_client: AsyncClient, org: Org) -> None:
    trip = await _create_trip(async_client, org, "100.00")
    await _advance_to_project_step(async_client, org, trip["id"])
    other = await _create_trip(async_client, org, "100.00")

    resp = await async_client.post(
        BULK_URL,
        json={"request_type": "TRIP", "request_ids": [trip["id"], other["id"]], "decision": "APPROVE"},
        headers=org.headers(org.project_manager),
    )

    assert resp.status_code == 403
    assert resp.json()["request_id"] == other["id"]


async def test_bulk_rejection_releases_committed_budget(async_client: AsyncClient, org: Org) -> None:
    trip = await _create_trip(async_client, org, "300.00")
    await _advance_to_project_step(async_client, org, trip["id"])
    await _decide(async_client, org, trip["id"], org.project_manager)

    resp = await async_client.post(
        BULK_URL,
        json={"request_type": "TRIP", "request_ids": [trip["id"]], "decision": "REJECT", "reason": "Freeze"},
        headers=org.headers(org.finance),
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["results"][0]["status"] == "REJECTED"
    assert Decimal(data["budget_impact"]["deallocations"]) == Decimal("300.00")
    [summary] = await _audit_entries(org, AuditAction.BULK_REJECTION_COMPLETED)
    assert summary.details["reason"] == "Freeze"


async def test_bulk_duplicate_ids_rejected(async_client: AsyncClient, org: Org) -> None:
    trip = await _create_trip(async_client, org, "100.00")
    resp = await async_client.post(
        BULK_URL,
        json={"request_type": "TRIP", "request_ids": [trip["id"], trip["id"]], "decision": "APPROVE"},
        headers=org.headers(org.admin),
    )
    assert resp.status_code == 400


async def test_bulk_empty_batch_rejected(async_client: AsyncClient, org: Org) -> None:
    resp = await async_client.post(
        BULK_URL,
        json={"request_type": "TRIP", "request_ids": [], "decision": "APPROVE"},
        headers=org.headers(org.admin),
    )
    assert resp.status_code == 422


async def test_bulk_commit_failure_rolls_back_every_request(
    async_client: AsyncClient, org: Org, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A write failing midway through the commit phase leaves the whole batch untouched."""
    first = await _create_trip(async_client, org, "100.00")
    second = await _create_trip(async_client, org, "200.00", requester=org.other_employee)
    for trip in (first, second):
        await _advance_to_project_step(async_client, org, trip["id"])
    approvals_before = len(await _audit_entries(org, AuditAction.TRIP_REQUEST_APPROVED))

    calls = 0
    real_write = approval.write_audit_log

    async def failing_write(*args: Any, **kwargs: Any) -> Any:
        nonlocal calls
        calls += 1
        if calls == 2:
            raise RuntimeError("audit store unavailable")
        return await real_write(*args, **kwargs)

    monkeypatch.setattr(approval, "write_audit_log", failing_write)

    with pytest.raises(RuntimeError, match="audit store unavailable"):
        await async_client.post(
            BULK_URL,
            json={"request_type": "TRIP", "request_ids": [first["id"], second["id"]], "decision": "APPROVE"},
            headers=org.headers(org.project_manager),
        )

    monkeypatch.setattr(approval, "write_audit_log", real_write)
    assert calls == 2
    for trip in (first, second):
        resp = await async_client.get(f"{TRIPS_URL}/{trip['id']}", headers=org.headers(org.finance))
        assert resp.json()["status"] == "PENDING_PROJECT_APPROVAL"
    assert len(await _audit_entries(org, AuditAction.TRIP_REQUEST_APPROVED)) == approvals_before
    assert await _audit_entries(org, AuditAction.BULK_APPROVAL_COMPLETED) == []


async def test_slow_decision_aborted_at_deadline(
    async_client: AsyncClient, org: Org, monkeypatch: pytest.MonkeyPatch
) -> None:
    trip = await _create_trip(async_client, org, "100.00")
    await _advance_to_project_step(async_client, org, trip["id"])
    real_check = approval.check_budget

    async def slow_check(*args: Any, **kwargs: Any) -> Any:
        await asyncio.sleep(1)
        return await real_check(*args, **kwargs)

    monkeypatch.setattr(approval, "check_budget", slow_check)
    monkeypatch.setattr(get_settings(), "transaction_timeout_seconds", 0.05)

    resp = await _decide(async_client, org, trip["id"], org.project_manager)

    assert resp.status_code == 503
    assert resp.json()["error"] == "TransactionAbortedError"
    resp = await async_client.get(f"{TRIPS_URL}/{trip['id']}", headers=org.headers(org.finance))
    assert resp.json()["status"] == "PENDING_PROJECT_APPROVAL"


# ---------------------------------------------------------------------------
# Administrative requests
# ---------------------------------------------------------------------------


async def _create_admin_request(client: AsyncClient, org: Org) -> dict[str, Any]:
    resp = await client.post(
        ADMIN_URL,
        json={
            "category": "BUDGET_INCREASE",
            "subject": "More survey days",
            "description": "Weather delays",
            "target_type": "PROJECT",
            "target_id": str(org.project.id),
            "requested_amount": "250.00",
        },
        headers=org.headers(org.project_manager),
    )
    assert resp.status_code == 201, resp.text
    result: dict[str, Any] = resp.json()
    return result


async def test_finance_approves_admin_request(async_client: AsyncClient, org: Org) -> None:
    request = await _create_admin_request(async_client, org)
    assert request["status"] == "PENDING_FINANCE_APPROVAL"

    resp = await async_client.post(f"{ADMIN_URL}/{request['id']}/approve", headers=org.headers(org.finance))

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "APPROVED"
    assert data["decided_by"] == str(org.finance.id)
    assert len(await _audit_entries(org, AuditAction.ADMIN_REQUEST_APPROVED, request["id"])) == 1


async def test_manager_cannot_decide_admin_request(async_client: AsyncClient, org: Org) -> None:
    request = await _create_admin_request(async_client, org)
    resp = await async_client.post(
        f"{ADMIN_URL}/{request['id']}/approve", headers=org.headers(org.department_manager)
    )
    assert resp.status_code == 403


async def test_admin_request_rejection_is_terminal(async_client: AsyncClient, org: Org) -> None:
    request = await _create_admin_request(async_client, org)
    resp = await async_client.post(
        f"{ADMIN_URL}/{request['id']}/reject", json={"reason": "Not funded"}, headers=org.headers(org.admin)
    )
    assert resp.json()["rejection_reason"] == "Not funded"

    resp = await async_client.post(f"{ADMIN_URL}/{request['id']}/approve", headers=org.headers(org.admin))
    assert resp.status_code == 409


async def test_bulk_admin_requests(async_client: AsyncClient, org: Org) -> None:
    first = await _create_admin_request(async_client, org)
    second = await _create_admin_request(async_client, org)

    resp = await async_client.post(
        BULK_URL,
        json={"request_type": "ADMINISTRATIVE", "request_ids": [first["id"], second["id"]], "decision": "APPROVE"},
        headers=org.headers(org.finance),
    )

    assert resp.status_code == 200
    assert resp.json()["count"] == 2
    assert {r["status"] for r in resp.json()["results"]} == {"APPROVED"}


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


async def test_mark_paid(async_client: AsyncClient, org: Org) -> None:
    trip = await _create_trip(async_client, org, "100.00")
    await _approve_fully(async_client, org, trip["id"])

    resp = await async_client.post(f"{TRIPS_URL}/{trip['id']}/mark-paid", headers=org.headers(org.finance))

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "PAID"
    assert data["paid"] is True
    assert data["paid_by"] == str(org.finance.id)

    resp = await async_client.post(f"{TRIPS_URL}/{trip['id']}/mark-paid", headers=org.headers(org.finance))
    assert resp.status_code == 409


async def test_mark_paid_requires_finance(async_client: AsyncClient, org: Org) -> None:
    trip = await _create_trip(async_client, org, "100.00")
    await _approve_fully(async_client, org, trip["id"])
    resp = await async_client.post(
        f"{TRIPS_URL}/{trip['id']}/mark-paid", headers=org.headers(org.project_manager)
    )
    assert resp.status_code == 403


async def test_bulk_payment_reports_failures_per_item(async_client: AsyncClient, org: Org) -> None:
    approved = await _create_trip(async_client, org, "120.00")
    await _approve_fully(async_client, org, approved["id"])
    pending = await _create_trip(async_client, org, "80.00")
    missing = str(uuid.uuid4())

    resp = await async_client.post(
        PAYMENTS_URL,
        json={"request_ids": [approved["id"], pending["id"], missing]},
        headers=org.headers(org.finance),
    )

    assert resp.status_code == 200
    data = resp.json()
    assert data["processed"] == [approved["id"]]
    assert Decimal(data["total_amount"]) == Decimal("120.00")
    reasons = {f["request_id"]: f["reason"] for f in data["failed"]}
    assert reasons[missing] == "not found"
    assert reasons[pending["id"]].startswith("not approved")

    [summary] = await _audit_entries(org, AuditAction.BULK_PAYMENT_PROCESSED)
    assert summary.details["processed_count"] == 1
    assert summary.details["failed_count"] == 2
