"""Readback of a dashboard user's own recent readings."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from vitalsync.api.dependencies import dashboard_identity, get_session
from vitalsync.config import get_settings
from vitalsync.storage.repository import ReadingRepository, UserRepository

router = APIRouter(prefix="/api", tags=["readings"])


def _clamp(limit: int | None) -> int:
    settings = get_settings()
    if limit is None:
        return settings.readback_default_limit
    return max(1, min(limit, settings.readback_max_limit))


async def _latest(session: AsyncSession, external_id: str, limit: int | None, emotion_only: bool):
    user = await UserRepository(session).get_by_external_id(external_id)
    if user is None:
        return []
    rows = await ReadingRepository(session).get_latest(user.id, _clamp(limit), emotion_only)
    return [r.to_payload() for r in rows]


@router.get("/readings/latest")
async def latest_readings(
    limit: int | None = Query(None),
    emotion_only: bool = Query(False, alias="emotionOnly"),
    external_id: str = Depends(dashboard_identity),
    session: AsyncSession = Depends(get_session),
):
    """Most recent readings (default 50, at most 200), oldest first."""
    return await _latest(session, external_id, limit, emotion_only)


@router.get("/emotion/latest")
async def latest_emotions(
    limit: int | None = Query(None),
    external_id: str = Depends(dashboard_identity),
    session: AsyncSession = Depends(get_session),
):
    """Most recent readings that carry an emotion, oldest first."""
    return await _latest(session, external_id, limit, emotion_only=True)
