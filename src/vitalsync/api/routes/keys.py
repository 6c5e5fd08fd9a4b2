"""Device-key issuance for dashboard users.

The plaintext key is in the response body of these calls and nowhere else.
Issuing again rotates the slot: the previous key stops working at once.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from vitalsync.api.dependencies import dashboard_identity, get_session
from vitalsync.api.schemas import KeyResponse
from vitalsync.auth.credentials import KeyIssuer
from vitalsync.config import get_settings
from vitalsync.models import KeySlot

router = APIRouter(prefix="/api", tags=["keys"])


async def _issue(session: AsyncSession, external_id: str, slot: KeySlot) -> KeyResponse:
    key = await KeyIssuer(session, nbytes=get_settings().key_bytes).issue(external_id, slot)
    return KeyResponse(api_key=key)


@router.post("/iot/key", status_code=201, response_model=KeyResponse, response_model_by_alias=True)
async def issue_iot_key(
    external_id: str = Depends(dashboard_identity),
    session: AsyncSession = Depends(get_session),
):
    return await _issue(session, external_id, KeySlot.IOT)


@router.post("/emotion/key", status_code=201, response_model=KeyResponse, response_model_by_alias=True)
async def issue_emotion_key(
    external_id: str = Depends(dashboard_identity),
    session: AsyncSession = Depends(get_session),
):
    return await _issue(session, external_id, KeySlot.EMOTION)
