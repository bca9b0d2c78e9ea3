import logging
from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from app.config import get_settings
from app.db import SessionDep

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: Literal["ok", "degraded"]
    version: str
    environment: str
    database: str


@router.get("/health", response_model=HealthResponse)
async def health(session: SessionDep) -> HealthResponse:
    """Report service metadata and whether the database answers."""
    settings = get_settings()
    database = session.get_bind().dialect.name

    try:
        await session.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Health check: %s connectivity failed", database)
        return HealthResponse(
            status="degraded", version=settings.app_version, environment=settings.environment, database=database
        )

    return HealthResponse(status="ok", version=settings.app_version, environment=settings.environment, database=database)
