"""FastAPI application — ingestion, key issuance, readback, and the live channel.

This module wires together all infrastructure:
- CORS, request logging, and error-handling middleware
- Database initialisation
- The publish hub and the correlation engine (kept on ``app.state``)
- Device ingestion, key issuance, readback, and simulation routes
- The ``/api/emotion/ws`` WebSocket feed
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import timedelta

import structlog
from fastapi import Depends, FastAPI

from vitalsync import __version__
from vitalsync.api.dependencies import get_hub
from vitalsync.api.middleware import setup_middleware
from vitalsync.api.routes.ingest import router as ingest_router
from vitalsync.api.routes.keys import router as keys_router
from vitalsync.api.routes.readings import router as readings_router
from vitalsync.api.routes.simulate import router as simulate_router
from vitalsync.api.websocket import router as ws_router
from vitalsync.config import get_settings
from vitalsync.ingestion.engine import CorrelationEngine
from vitalsync.storage.database import dispose_db, get_session_factory, init_db
from vitalsync.streaming.hub import PublishHub

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle hooks."""
    settings = get_settings()

    # 1. Database
    await init_db()
    logger.info("server.db_ready")

    # 2. Live channel registry
    hub = PublishHub()

    # 3. Correlation engine, publishing through the hub
    engine = CorrelationEngine(
        hub,
        get_session_factory(),
        merge_window=timedelta(seconds=settings.merge_window_seconds),
        serialize_per_user=settings.serialize_per_user,
    )

    app.state.hub = hub
    app.state.engine = engine
    logger.info(
        "server.started",
        port=settings.api_port,
        merge_window_seconds=settings.merge_window_seconds,
        validation_policy=settings.validation_policy,
    )

    yield  # ← application runs

    await hub.close()
    await dispose_db()
    logger.info("server.stopped")


app = FastAPI(
    title="VitalSync API",
    description="Biometric and facial-emotion telemetry ingestion with cross-source correlation.",
    version=__version__,
    lifespan=lifespan,
)

# ── Middleware ────────────────────────────────────────────────
setup_middleware(app)

# ── Routers ───────────────────────────────────────────────────
app.include_router(ingest_router)
app.include_router(keys_router)
app.include_router(readings_router)
app.include_router(simulate_router)
app.include_router(ws_router)


# ── Health ────────────────────────────────────────────────────

@app.get("/health", tags=["system"])
async def health(hub: PublishHub = Depends(get_hub)):
    return {
        "status": "ok",
        "subscribers": hub.subscriber_count,
        "live": hub.stats.snapshot(),
    }
