"""Tests for the audit log query endpoint."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from httpx import AsyncClient

    from tests.conftest import Org


async def _raise_trip(client: AsyncClient, org: Org) -> str:
    resp = await client.post(
        "/trip-requests",
        json={
            "project_id": str(org.project.id),
            "trip_date": "2026-12-01",
            "origin": "Harbor",
            "destination": "Island",
            "cost": "75.00",
        },
        headers=org.headers(org.employee),
    )
    assert resp.status_code == 201
    trip_id: str = resp.json()["id"]
    return trip_id


async def test_audit_log_is_admin_only(async_client: AsyncClient, org: Org) -> None:
    for user in (org.finance, org.department_manager, org.employee):
        resp = await async_client.get("/audit-logs", headers=org.headers(user))
        assert resp.status_code == 403


async def test_audit_log_filters_by_entity(async_client: AsyncClient, org: Org) -> None:
    first = await _raise_trip(async_client, org)
    await _raise_trip(async_client, org)
    resp = await async_client.post(f"/trip-requests/{first}/cancel", headers=org.headers(org.employee))
    assert resp.status_code == 200

    resp = await async_client.get("/audit-logs", params={"entity_id": first}, headers=org.headers(org.admin))
    assert resp.status_code == 200
    data = resp.json()
    assert data["total"] == 2
    assert {e["action"] for e in data["items"]} == {"TRIP_REQUEST_CREATED", "TRIP_REQUEST_CANCELLED"}
    assert all(e["entity_type"] == "TRIP_REQUEST" for e in data["items"])


async def test_audit_log_filters_by_action_and_actor(async_client: AsyncClient, org: Org) -> None:
    await _raise_trip(async_client, org)
    await _raise_trip(async_client, org)

    resp = await async_client.get(
        "/audit-logs",
        params={"action": "TRIP_REQUEST_CREATED", "actor_id": str(org.employee.id)},
        headers=org.headers(org.admin),
    )
    assert resp.json()["total"] == 2

    resp = await async_client.get(
        "/audit-logs", params={"actor_id": str(org.admin.id)}, headers=org.headers(org.admin)
    )
    assert resp.json()["total"] == 0


async def test_audit_log_pagination(async_client: AsyncClient, org: Org) -> None:
    for _ in range(3):
        await _raise_trip(async_client, org)
    resp = await async_client.get("/audit-logs", params={"limit": 2}, headers=org.headers(org.admin))
    data = resp.json()
    assert data["total"] == 3
    assert len(data["items"]) == 2
