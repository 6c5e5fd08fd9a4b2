"""Live fan-out of reading events."""

from vitalsync.streaming.hub import PublishHub, QueueSubscriber, Subscriber, WebSocketSubscriber

__all__ = ["PublishHub", "QueueSubscriber", "Subscriber", "WebSocketSubscriber"]
