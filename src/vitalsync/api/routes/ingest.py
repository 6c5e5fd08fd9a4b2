"""Device ingestion routes.

* ``POST /api/ingest`` — fused ingestion; ``X-API-Key`` or ``X-Emotion-Key``,
  resolved against either key slot
* ``POST /api/iot/ingest`` — wearables; ``X-API-Key`` only, needs a vital
* ``POST /api/emotion/ingest`` — camera inference; ``X-Emotion-Key`` only,
  needs an emotion label, unknown labels count as stress
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from vitalsync.api.dependencies import (
    EMOTION_KEY_HEADER,
    IOT_KEY_HEADER,
    get_engine,
    get_session,
    resolve_device,
)
from vitalsync.api.schemas import IngestResponse
from vitalsync.config import get_settings
from vitalsync.errors import MalformedInput
from vitalsync.ingestion.engine import CorrelationEngine
from vitalsync.ingestion.validation import prepare
from vitalsync.models import IngestRequest, KeySlot, ValidationPolicy

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["ingest"])


async def read_body(request: Request) -> IngestRequest:
    """Parse the JSON body; anything that is not an object is malformed."""
    try:
        data: Any = await request.json()
    except ValueError:
        raise MalformedInput("Body must be valid JSON.") from None
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedInput("Body must be a JSON object.")
    try:
        return IngestRequest.model_validate(data)
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        raise MalformedInput(f"Invalid fields: {', '.join(fields) or 'body'}.") from None


def _policy() -> ValidationPolicy:
    return ValidationPolicy(get_settings().validation_policy)


@router.post("/ingest", status_code=201, response_model=IngestResponse)
async def ingest(
    request: Request,
    session: AsyncSession = Depends(get_session),
    engine: CorrelationEngine = Depends(get_engine),
):
    """Ingest a partial reading from any producer and correlate it."""
    user = await resolve_device(request, session, (IOT_KEY_HEADER, EMOTION_KEY_HEADER))
    raw = await read_body(request)
    reading = prepare(raw, policy=_policy())
    reading_id = await engine.ingest(user, reading)
    return IngestResponse(id=reading_id)


@router.post("/iot/ingest", status_code=201, response_model=IngestResponse)
async def ingest_iot(
    request: Request,
    session: AsyncSession = Depends(get_session),
    engine: CorrelationEngine = Depends(get_engine),
):
    """Ingest heart rate / SpO₂ from a wearable."""
    user = await resolve_device(request, session, (IOT_KEY_HEADER,), (KeySlot.IOT,))
    raw = await read_body(request)
    reading = prepare(raw, policy=_policy(), default_source="iot")
    if not reading.has_vitals:
        raise MalformedInput("Provide at least one of heartRate or spO2.")
    reading_id = await engine.ingest(user, reading)
    return IngestResponse(id=reading_id)


@router.post("/emotion/ingest", status_code=201, response_model=IngestResponse)
async def ingest_emotion(
    request: Request,
    session: AsyncSession = Depends(get_session),
    engine: CorrelationEngine = Depends(get_engine),
):
    """Ingest a facial-emotion classification from the browser camera."""
    user = await resolve_device(request, session, (EMOTION_KEY_HEADER,), (KeySlot.EMOTION,))
    raw = await read_body(request)
    if not raw.emotion:
        raise MalformedInput("emotion required.")
    reading = prepare(
        raw,
        policy=_policy(),
        force_emotion_default=True,
        default_source="camera",
    )
    reading_id = await engine.ingest(user, reading)
    return IngestResponse(id=reading_id)
