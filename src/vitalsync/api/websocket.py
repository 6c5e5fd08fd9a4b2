"""Live channel — one hub subscriber per connected dashboard WebSocket."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from vitalsync.streaming.hub import PublishHub, WebSocketSubscriber

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["live"])


@router.websocket("/api/emotion/ws")
async def emotion_stream(ws: WebSocket, user_id: str | None = Query(None, alias="userId")):
    """Push ``{"type": "emotion", "userId", "row"}`` envelopes as readings land.

    Every connection receives every event; pass ``?userId=`` to have this
    connection skip events addressed to other users.
    """
    hub: PublishHub = ws.app.state.hub
    await ws.accept()
    subscriber = WebSocketSubscriber(ws, user_filter=user_id)
    hub.add(subscriber)
    try:
        while True:
            # Clients are read-only consumers; inbound frames are ignored.
            await ws.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        hub.remove(subscriber)
