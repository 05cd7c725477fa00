"""FastAPI middleware for request tracing and error handling.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware — injects X-Request-ID into every request/response
    2. ErrorHandlerMiddleware — catches domain exceptions -> structured JSON errors
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from picking_verifier.domain.exceptions import (
    AlreadyVerifiedError,
    BusyError,
    GatewayError,
    InvalidInputError,
    NoActiveOrderError,
    NotInOrderError,
    OrderNotFoundError,
    PickingError,
    QuantityExceededError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

# Most specific first; the first isinstance match wins
ERROR_STATUS: tuple[tuple[type[PickingError], int], ...] = (
    (InvalidInputError, 400),
    (NotInOrderError, 400),
    (QuantityExceededError, 400),
    (NoActiveOrderError, 400),
    (OrderNotFoundError, 404),
    (AlreadyVerifiedError, 409),
    (BusyError, 429),
    (GatewayError, 500),
)


def status_for(exc: PickingError) -> int:
    for exc_type, status in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status
    return 400


def error_body(exc: PickingError) -> dict:
    return {"erro": exc.message, "codigo": exc.code}


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

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
        except GatewayError as exc:
            logger.error(
                "gateway.error",
                error=exc.message,
                code=exc.code,
                status=exc.status_code,
                path=request.url.path,
            )
            return JSONResponse(status_code=status_for(exc), content=error_body(exc))
        except PickingError as exc:
            status = status_for(exc)
            logger.info("request.rejected", error=exc.message, code=exc.code, status=status)
            return JSONResponse(status_code=status, content=error_body(exc))
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={
                    "erro": "An unexpected error occurred",
                    "codigo": "INTERNAL_ERROR",
                },
            )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    Order matters — middleware is applied bottom-up, so the last added
    middleware runs first.
    """
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIDMiddleware)
