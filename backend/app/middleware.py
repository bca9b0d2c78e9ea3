from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi.middleware.cors import CORSMiddleware

if TYPE_CHECKING:
    from fastapi import FastAPI

    from app.config import Settings

AUTH_HEADERS = ["X-User-Id", "X-Active-Role"]


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Configure CORS so browser clients can send the identity headers."""
    app.add_middleware(
        CORSMiddleware,  # ty: ignore[invalid-argument-type]
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "PUT", "OPTIONS"],
        allow_headers=["Content-Type", *AUTH_HEADERS],
    )
