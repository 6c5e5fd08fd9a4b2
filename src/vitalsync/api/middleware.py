"""Middleware — CORS, request logging, error handling."""

from __future__ import annotations

import time
from typing import Callable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from vitalsync.config import get_settings
from vitalsync.errors import MalformedInput, VitalSyncError
from vitalsync.logger import bind_request_context

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


# ── CORS ──────────────────────────────────────────────────────


def add_cors(app: FastAPI) -> None:
    """Configure CORS from application settings.

    ``settings.cors_origins`` is a comma-separated string of allowed
    origins (or ``"*"`` to allow all).
    """
    settings = get_settings()
    origins_raw = settings.cors_origins.strip()

    if origins_raw == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in origins_raw.split(",") if o.strip()]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )


# ── Request logging ───────────────────────────────────────────


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log request method, path, status, and duration under a request id.

    The id comes from ``X-Request-Id`` when the caller sends one and is
    echoed back on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = bind_request_context(request.headers.get(REQUEST_ID_HEADER))
        start = time.monotonic()
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        if request.url.path != "/health":
            logger.info(
                "http.request",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=duration_ms,
            )
        return response


# ── Error handling ────────────────────────────────────────────


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch unhandled exceptions and return a clean 500 response."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            logger.exception("http.unhandled_error", path=request.url.path, error=type(exc).__name__)
            return JSONResponse(
                status_code=500,
                content={"error": "ServerError", "message": "Internal server error."},
            )


async def domain_error_handler(request: Request, exc: VitalSyncError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log("http.domain_error", path=request.url.path, kind=exc.kind, status=exc.status_code)
    return exc.to_response()


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({".".join(str(p) for p in err.get("loc", ())[1:]) for err in exc.errors()})
    return MalformedInput(f"Invalid fields: {', '.join(f for f in fields if f) or 'body'}.").to_response()


# ── Setup helper ──────────────────────────────────────────────


def setup_middleware(app: FastAPI) -> None:
    """Wire exception handlers and middleware into the application.

    Order matters — outermost middleware runs first:
    1. Error handler (catch everything)
    2. Request logging
    3. CORS
    """
    app.add_exception_handler(VitalSyncError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Add from innermost → outermost (Starlette reverses the stack)
    add_cors(app)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)
