"""Publish/subscribe hub — fan out reading events to live subscribers.

Architecture
~~~~~~~~~~~~
* **Subscriber** — abstract base for a live connection.
* **WebSocketSubscriber / QueueSubscriber** — concrete connections: a
  dashboard WebSocket, or an in-process async stream.
* **PublishHub** — registry of live subscribers plus fire-and-forget fan-out
  with per-subscriber error isolation.

Every subscriber receives every event.  Each event names the user it belongs
to (``userId``) and the subscriber side discards the ones that are not its
own.  Delivery is at-most-once per open connection: there is no replay
buffer and no redelivery.  A subscriber whose send fails is dropped from the
registry.
"""

from __future__ import annotations

import asyncio
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, AsyncIterator

import structlog

from vitalsync.errors import PublishError
from vitalsync.models import ReadingEvent

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = structlog.get_logger(__name__)


# ── Statistics ────────────────────────────────────────────────


@dataclass
class HubStats:
    published: int = 0
    delivered: int = 0
    failed: int = 0

    def snapshot(self) -> dict[str, int]:
        return {"published": self.published, "delivered": self.delivered, "failed": self.failed}


# ── Subscribers ───────────────────────────────────────────────


class Subscriber(ABC):
    """Contract for a live connection registered with the hub.

    ``user_filter`` is the external identity this connection cares about;
    ``None`` means "everything" (admin / debugging consumers).
    """

    name: str = "base"

    def __init__(self, user_filter: str | None = None) -> None:
        self.user_filter = user_filter

    def wants(self, event: dict[str, Any]) -> bool:
        return self.user_filter is None or event.get("userId") == self.user_filter

    @abstractmethod
    async def send(self, payload: str) -> None:
        """Deliver one serialised event.  Raise on a dead connection."""

    async def close(self) -> None:
        """Release the underlying connection."""


class WebSocketSubscriber(Subscriber):
    """A dashboard connected over ``/api/emotion/ws``."""

    name = "websocket"

    def __init__(self, ws: WebSocket, user_filter: str | None = None) -> None:
        super().__init__(user_filter)
        self._ws = ws

    async def send(self, payload: str) -> None:
        if self.user_filter is not None and not self.wants(json.loads(payload)):
            return
        await self._ws.send_text(payload)


_CLOSED = object()


class QueueSubscriber(Subscriber):
    """In-process stream of events, consumed with ``async for``.

    Events for other users are discarded on the way out.  Use as an async
    context manager so the subscription is removed from the hub on exit.
    """

    name = "queue"

    def __init__(self, hub: PublishHub, user_filter: str | None = None) -> None:
        super().__init__(user_filter)
        self._hub = hub
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    async def send(self, payload: str) -> None:
        if self._closed:
            raise PublishError("Subscription closed.")
        self._queue.put_nowait(payload)

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    async def get(self) -> dict[str, Any]:
        """Wait for the next event addressed to this subscriber."""
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                raise StopAsyncIteration
            event = json.loads(item)
            if self.wants(event):
                return event

    def __aiter__(self) -> AsyncIterator[dict[str, Any]]:
        return self

    async def __anext__(self) -> dict[str, Any]:
        return await self.get()

    async def __aenter__(self) -> QueueSubscriber:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self._hub.unsubscribe(self)


# ── Hub ───────────────────────────────────────────────────────


class PublishHub:
    """Process-wide registry of live subscribers with best-effort fan-out.

    One instance is created by the application lifespan and handed to the
    correlation engine; nothing reaches it through module globals.
    """

    def __init__(self) -> None:
        self._subscribers: set[Subscriber] = set()
        self._pending: set[asyncio.Task[None]] = set()
        self.stats = HubStats()

    # ── Registry ──────────────────────────────────────────────

    def add(self, subscriber: Subscriber) -> None:
        self._subscribers.add(subscriber)
        logger.info("hub.subscribed", kind=subscriber.name, total=len(self._subscribers))

    def remove(self, subscriber: Subscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.discard(subscriber)
            logger.info("hub.unsubscribed", kind=subscriber.name, total=len(self._subscribers))

    async def unsubscribe(self, subscriber: Subscriber) -> None:
        self.remove(subscriber)
        await subscriber.close()

    def subscribe(self, user_filter: str | None = None) -> QueueSubscriber:
        """Register and return an in-process event stream for *user_filter*."""
        subscriber = QueueSubscriber(self, user_filter)
        self.add(subscriber)
        return subscriber

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    # ── Publishing ────────────────────────────────────────────

    def publish(self, event: ReadingEvent) -> None:
        """Schedule delivery of *event* to every subscriber and return at once.

        Never raises: failures are logged and the failing subscriber dropped.
        """
        self.stats.published += 1
        targets = list(self._subscribers)
        if not targets:
            return
        try:
            payload = json.dumps(event.to_wire())
            task = asyncio.get_running_loop().create_task(self._fan_out(payload, targets))
        except Exception as exc:  # noqa: BLE001
            logger.error("hub.publish_failed", error=str(exc))
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _fan_out(self, payload: str, targets: list[Subscriber]) -> None:
        await asyncio.gather(*(self._deliver(s, payload) for s in targets))

    async def _deliver(self, subscriber: Subscriber, payload: str) -> None:
        try:
            await subscriber.send(payload)
            self.stats.delivered += 1
        except Exception as exc:  # noqa: BLE001
            self.stats.failed += 1
            err = exc if isinstance(exc, PublishError) else PublishError(type(exc).__name__)
            logger.warning("hub.send_failed", kind=subscriber.name, error=err.message)
            self.remove(subscriber)

    async def drain(self) -> None:
        """Wait for all in-flight fan-outs to finish (shutdown / tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        for subscriber in list(self._subscribers):
            await self.unsubscribe(subscriber)
