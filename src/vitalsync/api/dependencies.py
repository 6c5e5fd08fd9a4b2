"""FastAPI dependencies: sessions, identities, and the shared engine / hub."""

from __future__ import annotations

from typing import Sequence

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from vitalsync.auth.credentials import ALL_SLOTS, CredentialResolver
from vitalsync.config import get_settings
from vitalsync.errors import Unauthenticated
from vitalsync.ingestion.engine import CorrelationEngine
from vitalsync.models import KeySlot, UserRef
from vitalsync.storage.database import get_session
from vitalsync.streaming.hub import PublishHub

IOT_KEY_HEADER = "X-API-Key"
EMOTION_KEY_HEADER = "X-Emotion-Key"


def get_engine(request: Request) -> CorrelationEngine:
    return request.app.state.engine


def get_hub(request: Request) -> PublishHub:
    return request.app.state.hub


def dashboard_identity(request: Request) -> str:
    """External identity asserted by the upstream identity provider."""
    external_id = request.headers.get(get_settings().identity_header, "").strip()
    if not external_id:
        raise Unauthenticated("Missing user identity.")
    return external_id


async def resolve_device(
    request: Request,
    session: AsyncSession,
    headers: Sequence[str],
    slots: Sequence[KeySlot] = ALL_SLOTS,
) -> UserRef:
    """Resolve the first present key among *headers* against *slots*."""
    key = next((request.headers[h] for h in headers if request.headers.get(h)), None)
    return await CredentialResolver(session).resolve(key, slots)
