"""FastAPI middleware for request tracing, error handling, and CORS.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware - injects X-Request-ID into every request/response
    2. ErrorHandlerMiddleware - catches domain exceptions -> structured JSON errors
    3. CORSMiddleware - handles the marketplace's browser clients
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from work_settlement.domain.exceptions import (
    AlreadyTerminalError,
    ConcurrentModificationError,
    InvalidAmountError,
    InvalidStateError,
    InvariantViolationError,
    NotFoundError,
    PartyMismatchError,
    PaymentRailError,
    UserDirectoryError,
    WorkSettlementError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

# Most specific first; the first isinstance match wins.
_STATUS_BY_ERROR: tuple[tuple[type[WorkSettlementError], int, str], ...] = (
    (NotFoundError, 404, "lookup.not_found"),
    (PartyMismatchError, 403, "party.mismatch"),
    (InvalidAmountError, 422, "amount.invalid"),
    (AlreadyTerminalError, 409, "state_machine.already_terminal"),
    (InvariantViolationError, 409, "settlement.invariant_violation"),
    (ConcurrentModificationError, 409, "concurrency.conflict"),
    (InvalidStateError, 409, "state_machine.invalid_transition"),
    (PaymentRailError, 502, "payment_rail.error"),
    (UserDirectoryError, 502, "user_directory.error"),
)


def error_status(exc: WorkSettlementError) -> tuple[int, str]:
    """Return the HTTP status and log event for a domain exception."""
    for error_cls, status_code, event in _STATUS_BY_ERROR:
        if isinstance(exc, error_cls):
            return status_code, event
    return 400, "domain.error"


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Use client-provided ID or generate one
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        # Bind to structlog context for all log entries in this request
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except WorkSettlementError as exc:
            status_code, event = error_status(exc)
            log = logger.error if status_code >= 500 else logger.warning
            log(event, error=exc.message, code=exc.code, path=request.url.path)
            return JSONResponse(
                status_code=status_code,
                content={"error": exc.code, "message": exc.message},
            )
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={
                    "error": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                },
            )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    Order matters - middleware is applied bottom-up, so the last added
    middleware runs first.
    """
    # CORS (runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Tighten in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error handling (runs second)
    app.add_middleware(ErrorHandlerMiddleware)

    # Request ID (runs last = outermost)
    app.add_middleware(RequestIDMiddleware)
