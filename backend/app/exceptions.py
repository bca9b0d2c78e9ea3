from __future__ import annotations

import uuid
from decimal import Decimal

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response schema."""

    error: str
    detail: str | None = None
    status_code: int
    request_id: uuid.UUID | None = None
    budget_excess: Decimal | None = None


class AppError(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        *,
        request_id: uuid.UUID | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.request_id = request_id
        super().__init__(self.message)


class NotFoundError(AppError):
    """A request, department, project or user does not exist."""

    def __init__(self, message: str, *, request_id: uuid.UUID | None = None) -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND, request_id=request_id)


class ForbiddenError(AppError):
    """A capability or visibility check failed."""

    def __init__(self, message: str, *, request_id: uuid.UUID | None = None) -> None:
        super().__init__(message, status.HTTP_403_FORBIDDEN, request_id=request_id)


class ValidationError(AppError):
    """Domain input is malformed or refers to an ineligible record."""

    def __init__(self, message: str, *, request_id: uuid.UUID | None = None) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST, request_id=request_id)


class ConflictError(AppError):
    """The target is in a terminal or mismatched state for the transition."""

    def __init__(self, message: str, *, request_id: uuid.UUID | None = None) -> None:
        super().__init__(message, status.HTTP_409_CONFLICT, request_id=request_id)


class BudgetExceededError(AppError):
    """Approving would push a project's allocation past its effective budget."""

    def __init__(
        self,
        budget_excess: Decimal,
        available_budget: Decimal,
        *,
        request_id: uuid.UUID | None = None,
    ) -> None:
        self.budget_excess = budget_excess
        self.available_budget = available_budget
        message = f"Project budget exceeded by {budget_excess}"
        super().__init__(message, status.HTTP_400_BAD_REQUEST, request_id=request_id)


class TransactionAbortedError(AppError):
    """The transaction timed out or was aborted by the database. Safe to retry."""

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


async def _app_exception_handler(request: Request, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=type(exc).__name__,
            detail=exc.message,
            status_code=exc.status_code,
            request_id=exc.request_id,
            budget_excess=getattr(exc, "budget_excess", None),
        ).model_dump(mode="json"),
    )


async def _validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=ErrorResponse(
            error="ValidationError",
            detail=str(exc.errors()),
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        ).model_dump(mode="json"),
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the application."""
    app.add_exception_handler(AppError, _app_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)  # type: ignore[arg-type]
