"""Manual readings entered from the dashboard, for demos and testing."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from vitalsync.api.dependencies import dashboard_identity, get_engine, get_session
from vitalsync.api.schemas import IngestResponse, SimulateRequest
from vitalsync.config import get_settings
from vitalsync.errors import MalformedInput
from vitalsync.ingestion.engine import CorrelationEngine
from vitalsync.ingestion.validation import prepare
from vitalsync.models import IngestRequest, UserRef, ValidationPolicy
from vitalsync.storage.repository import UserRepository

router = APIRouter(prefix="/api", tags=["simulate"])


async def _read_form_or_json(request: Request) -> SimulateRequest:
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("application/json"):
            data = await request.json()
        else:
            form = await request.form()
            data = {k: v for k, v in form.items() if isinstance(v, str) and v.strip()}
        return SimulateRequest.model_validate(data or {})
    except (ValueError, ValidationError):
        raise MalformedInput("Invalid simulation form.") from None


@router.post("/simulate", status_code=201, response_model=IngestResponse)
async def simulate(
    request: Request,
    external_id: str = Depends(dashboard_identity),
    session: AsyncSession = Depends(get_session),
    engine: CorrelationEngine = Depends(get_engine),
):
    form = await _read_form_or_json(request)
    user_row = await UserRepository(session).upsert(external_id)
    user = UserRef(id=user_row.id, external_id=user_row.external_id)

    raw = IngestRequest(
        heart_rate=form.heart_rate,
        spo2=form.spo2,
        emotion=form.emotion,
        source="manual",
    )
    reading = prepare(raw, policy=ValidationPolicy(get_settings().validation_policy))
    reading_id = await engine.ingest(user, reading)
    return IngestResponse(id=reading_id)
