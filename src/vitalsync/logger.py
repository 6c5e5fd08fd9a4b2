"""Structured logging for the ingestion service using *structlog*.

Every line carries ``service`` / ``version``; lines emitted while an HTTP
request is in flight also carry its ``request_id`` (see
:func:`bind_request_context`).
"""

from __future__ import annotations

import logging
import sys
import uuid
from typing import Any

import structlog

from vitalsync import __version__

SERVICE_NAME = "vitalsync"


def add_service_info(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


def bind_request_context(request_id: str | None = None, **values: Any) -> str:
    """Start a fresh per-request log context and return its request id.

    An upstream ``request_id`` is kept as is; otherwise a new one is minted.
    """
    request_id = request_id or uuid.uuid4().hex
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, **values)
    return request_id


def setup_logging(level: str = "INFO", json_logs: bool | None = None) -> None:
    """Configure *structlog* once at startup.

    ``json_logs=None`` picks the console renderer on a TTY and JSON lines
    otherwise (containers, log shippers).
    """
    if json_logs is None:
        json_logs = not sys.stderr.isatty()
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_service_info,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper(), logging.INFO)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
