import asyncio
import logging
from typing import Any, Callable, Optional, Protocol

from fastapi import WebSocket
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


class Subscriber(Protocol):
    """Anything that can receive a JSON message."""

    async def send_json(self, data: Any) -> None: ...


StatusSource = Callable[[], dict[str, Any]]


class ConnectionManager:
    """
    Broadcast hub for live stream subscribers.

    Delivery is best-effort: a subscriber whose send fails or whose
    connection is no longer open is dropped without affecting the rest.
    """

    def __init__(self, status_source: Optional[StatusSource] = None):
        self.active_connections: list[Subscriber] = []
        self._status_source = status_source

    def bind_status_source(self, status_source: StatusSource) -> None:
        """Set the callable that builds the snapshot sent to new subscribers."""
        self._status_source = status_source

    @property
    def connection_count(self) -> int:
        return len(self.active_connections)

    async def connect(self, websocket: WebSocket) -> bool:
        """Accept a WebSocket and register it."""
        await websocket.accept()
        return await self.register(websocket)

    async def register(self, subscriber: Subscriber) -> bool:
        """
        Add a subscriber and send it the current status snapshot.

        Returns False if the snapshot could not be delivered; the
        subscriber is not kept in that case.
        """
        if subscriber not in self.active_connections:
            self.active_connections.append(subscriber)
        logger.info("Client connected. Total connections: %d", len(self.active_connections))

        if self._status_source is None:
            return True

        if not await self._deliver(subscriber, self._status_source()):
            self.unregister(subscriber)
            return False
        return True

    def unregister(self, subscriber: Subscriber) -> None:
        """Remove a subscriber. Safe to call more than once."""
        if subscriber in self.active_connections:
            self.active_connections.remove(subscriber)
            logger.info("Client disconnected. Total connections: %d", len(self.active_connections))

    async def send_personal(self, subscriber: Subscriber, data: dict[str, Any]) -> None:
        """Send JSON data to a specific client."""
        await subscriber.send_json(data)

    async def publish(self, data: dict[str, Any]) -> int:
        """
        Send JSON data to all connected clients.

        Returns the number of subscribers that received it.
        """
        targets = list(self.active_connections)
        if not targets:
            return 0

        results = await asyncio.gather(*(self._deliver(sub, data) for sub in targets))

        for subscriber, delivered in zip(targets, results):
            if not delivered:
                self.unregister(subscriber)

        return sum(results)

    @staticmethod
    def _is_open(subscriber: Subscriber) -> bool:
        state = getattr(subscriber, "client_state", None)
        if isinstance(state, WebSocketState) and state != WebSocketState.CONNECTED:
            return False
        state = getattr(subscriber, "application_state", None)
        if isinstance(state, WebSocketState) and state != WebSocketState.CONNECTED:
            return False
        return True

    async def _deliver(self, subscriber: Subscriber, data: dict[str, Any]) -> bool:
        if not self._is_open(subscriber):
            return False
        try:
            await subscriber.send_json(data)
            return True
        except Exception as e:
            logger.debug("Dropping subscriber after failed send: %s", e)
            return False


# Singleton instance
manager = ConnectionManager()
