"""Seed script for development data.

Run with:  python -m app.seed

The first administrator is written straight to the database since creating
users through the API already requires one. Everything else goes through the
running API so the usual validation and audit trail apply.
"""

from __future__ import annotations

import asyncio
import sys
import uuid
from datetime import UTC, date, datetime, timedelta

import httpx
from sqlmodel import select

from app.db import dispose_engine, get_session_factory
from app.models.enums import Role
from app.models.user import User

BASE_URL = "http://localhost:8000"
ADMIN_USER_ID = "00000000-0000-0000-0000-000000000001"
ADMIN_EMAIL = "admin@example.com"

USERS = [
    {"full_name": "Fiona Finance", "email": "fiona.finance@example.com", "role": "FINANCE"},
    {"full_name": "Alice Johnson", "email": "alice.johnson@example.com", "role": "MANAGER"},
    {"full_name": "Bob Smith", "email": "bob.smith@example.com", "role": "MANAGER"},
    {"full_name": "Carol Williams", "email": "carol.williams@example.com", "role": "EMPLOYEE"},
    {"full_name": "Dave Brown", "email": "dave.brown@example.com", "role": "EMPLOYEE"},
]


def _headers(user_id: str, active_role: str | None = None) -> dict[str, str]:
    headers = {"Content-Type": "application/json", "X-User-Id": user_id}
    if active_role is not None:
        headers["X-Active-Role"] = active_role
    return headers


ADMIN_HEADERS = _headers(ADMIN_USER_ID)


async def _safe_post(
    client: httpx.AsyncClient,
    url: str,
    json: dict,
    label: str,
    headers: dict[str, str] = ADMIN_HEADERS,
) -> dict | None:
    """POST with 409-conflict tolerance so reruns are harmless."""
    resp = await client.post(url, json=json, headers=headers)
    if resp.status_code in (200, 201):
        print(f"  [OK] {label}")
        return resp.json()
    if resp.status_code == 409:
        print(f"  [SKIP] {label} (already exists)")
        return None
    print(f"  [ERROR] {label}: {resp.status_code} {resp.text[:200]}")
    return None


async def _list_items(client: httpx.AsyncClient, path: str) -> list[dict]:
    resp = await client.get(f"{BASE_URL}{path}", params={"limit": 100}, headers=ADMIN_HEADERS)
    resp.raise_for_status()
    return resp.json()["items"]


async def bootstrap_admin() -> None:
    """Insert the well-known administrator unless it already exists."""
    print("\n--- Bootstrapping administrator ---")
    factory = get_session_factory()
    async with factory() as session:
        admin_id = uuid.UUID(ADMIN_USER_ID)
        existing = (await session.execute(select(User).where(User.id == admin_id))).scalar_one_or_none()
        if existing is not None:
            print("  [SKIP] Administrator (already exists)")
            return
        session.add(User(id=admin_id, full_name="Ada Admin", email=ADMIN_EMAIL, role=Role.ADMIN.value))
        await session.commit()
        print("  [OK] Administrator")


async def seed_users(client: httpx.AsyncClient) -> dict[str, str]:
    """Seed users and return their ids keyed by email."""
    print("\n--- Seeding users ---")
    for user in USERS:
        await _safe_post(client, f"{BASE_URL}/users", user, f"User: {user['full_name']} ({user['role']})")
    return {u["email"]: u["id"] for u in await _list_items(client, "/users")}


async def seed_organization(client: httpx.AsyncClient, users: dict[str, str]) -> dict[str, str]:
    """Seed departments and projects; return project ids keyed by name."""
    print("\n--- Seeding departments ---")
    await _safe_post(
        client,
        f"{BASE_URL}/departments",
        {"name": "Field Operations", "budget": "50000.00", "manager_id": users["alice.johnson@example.com"]},
        "Department: Field Operations",
    )
    await _safe_post(client, f"{BASE_URL}/departments", {"name": "Research", "budget": "20000.00"}, "Department: Research")
    departments = {d["name"]: d["id"] for d in await _list_items(client, "/departments")}

    for email in ("carol.williams@example.com", "dave.brown@example.com"):
        resp = await client.patch(
            f"{BASE_URL}/users/{users[email]}",
            json={"department_id": departments["Field Operations"]},
            headers=ADMIN_HEADERS,
        )
        print(f"  [{'OK' if resp.status_code == 200 else 'ERROR'}] Home department for {email}")

    resp = await client.put(
        f"{BASE_URL}/departments/{departments['Field Operations']}/monthly-bonus",
        json={"amount": "2500.00"},
        headers=ADMIN_HEADERS,
    )
    print(f"  [{'OK' if resp.status_code == 200 else 'ERROR'}] Monthly bonus: Field Operations")

    print("\n--- Seeding projects ---")
    projects = {p["name"]: p["id"] for p in await _list_items(client, "/projects")}
    specs = [
        ("Coastal Survey", "12000.00", departments["Field Operations"], (date.today() + timedelta(days=180))),
        ("Sensor Pilot", "3000.00", departments["Research"], (date.today() + timedelta(days=30))),
    ]
    for name, budget, department_id, expiry in specs:
        if name in projects:
            print(f"  [SKIP] Project: {name} (already exists)")
            continue
        created = await _safe_post(
            client,
            f"{BASE_URL}/projects",
            {
                "name": name,
                "budget": budget,
                "department_id": department_id,
                "manager_id": users["bob.smith@example.com"],
                "expiry_date": expiry.isoformat(),
            },
            f"Project: {name}",
        )
        if created:
            projects[name] = created["id"]
    return projects


async def seed_trips(client: httpx.AsyncClient, users: dict[str, str], projects: dict[str, str]) -> None:
    """Seed a handful of trips in different workflow states."""
    print("\n--- Seeding trip requests ---")
    carol = users["carol.williams@example.com"]
    trip_date = (datetime.now(UTC) + timedelta(days=14)).date().isoformat()

    pending = await _safe_post(
        client,
        f"{BASE_URL}/trip-requests",
        {
            "project_id": projects["Coastal Survey"],
            "trip_type": "ROUTINE",
            "trip_date": trip_date,
            "origin": "Harbor Office",
            "destination": "North Beach",
            "purpose": "Tide gauge calibration",
            "cost": "450.00",
        },
        "Trip: Carol routine (PENDING_DEPARTMENT_APPROVAL)",
        headers=_headers(carol),
    )
    if pending is None:
        return

    # Walk a second trip through department and project approval.
    approved = await _safe_post(
        client,
        f"{BASE_URL}/trip-requests",
        {
            "project_id": projects["Coastal Survey"],
            "trip_type": "TICKETED",
            "trip_date": trip_date,
            "origin": "Harbor Office",
            "destination": "Island Station",
            "purpose": "Quarterly equipment swap",
            "ticket_number": "FERRY-2231",
            "cost": "1200.00",
        },
        "Trip: Carol ticketed",
        headers=_headers(carol),
    )
    if approved is None:
        return
    for approver, label in (
        (users["alice.johnson@example.com"], "department"),
        (users["bob.smith@example.com"], "project manager"),
    ):
        await _safe_post(
            client,
            f"{BASE_URL}/trip-requests/{approved['id']}/approve",
            {"reason": f"Seeded {label} approval"},
            f"Approve ticketed trip ({label})",
            headers=_headers(approver),
        )


async def main() -> None:
    print("=" * 60)
    print("  Trip Approvals: Development Seed Script")
    print("=" * 60)

    await bootstrap_admin()
    await dispose_engine()

    async with httpx.AsyncClient(timeout=30.0) as client:
        try:
            resp = await client.get(f"{BASE_URL}/health")
            if resp.status_code != 200:
                print(f"API health check failed: {resp.status_code}")
                sys.exit(1)
            print("\n[OK] API is healthy")
        except httpx.ConnectError:
            print("ERROR: Cannot connect to API at", BASE_URL)
            sys.exit(1)

        users = await seed_users(client)
        projects = await seed_organization(client, users)
        await seed_trips(client, users, projects)

    print("\n" + "=" * 60)
    print("  Seeding complete!")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
