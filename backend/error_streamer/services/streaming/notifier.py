"""
Stream Notifier.

Formats stream messages for the WebSocket protocol and hands them to
the broadcast hub. This is the only place tick results become wire
messages.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

from error_streamer.models.events import EventRecord

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    """Protocol for fanning a message out to subscribers."""

    async def publish(self, data: dict[str, Any]) -> int: ...


def status_message(
    is_streaming: bool,
    interval: int,
    provider: Optional[dict[str, Any]],
) -> dict[str, Any]:
    """Build a status message."""
    return {
        "type": "status",
        "isStreaming": is_streaming,
        "interval": interval,
        "provider": provider,
    }


class StreamNotifier:
    """
    Sends stream events to subscribers.

    Message types:
    - event: {"type": "event", "data": {...}, "timestamp": "..."}
    - status: {"type": "status", "isStreaming": bool, "interval": int, "provider": {...}}
    - error: {"type": "error", "message": "...", "provider": {...}}
    """

    def __init__(self, publisher: Publisher):
        self._publisher = publisher

    async def notify_event(self, event: EventRecord) -> int:
        delivered = await self._publisher.publish({
            "type": "event",
            "data": event.to_wire(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        logger.debug("Broadcast event %s to %d subscribers", event.correlation_id, delivered)
        return delivered

    async def notify_status(
        self,
        is_streaming: bool,
        interval: int,
        provider: Optional[dict[str, Any]],
    ) -> int:
        return await self._publisher.publish(status_message(is_streaming, interval, provider))

    async def notify_error(self, message: str, provider: Optional[dict[str, Any]] = None) -> int:
        data: dict[str, Any] = {"type": "error", "message": message}
        if provider:
            data["provider"] = provider
        return await self._publisher.publish(data)
