from __future__ import annotations

from fastapi import APIRouter

from app.api.deps import SettingsAdminDep
from app.db import SessionDep
from app.schemas.report import MaintenanceRunResponse
from app.services.maintenance import run_maintenance_sweep

maintenance_router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@maintenance_router.post("/sweep", response_model=MaintenanceRunResponse)
async def trigger_maintenance_sweep(session: SessionDep, view: SettingsAdminDep) -> MaintenanceRunResponse:
    """Run the bonus reset and project expiry jobs now (admin only)."""
    result = await run_maintenance_sweep(session)
    return result.to_response()
