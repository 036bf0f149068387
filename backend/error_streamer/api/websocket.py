"""
WebSocket endpoint for the live event stream.
"""
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from error_streamer.dependencies import get_connection_manager
from error_streamer.services.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/stream")
async def websocket_stream(
    websocket: WebSocket,
    hub: ConnectionManager = Depends(get_connection_manager),
):
    """
    WebSocket endpoint for stream subscribers.

    Outgoing messages:
    - {"type": "status", "isStreaming": bool, "interval": int, "provider": {...}} - sent on connect and on changes
    - {"type": "event", "data": {...}, "timestamp": "..."} - generated event
    - {"type": "error", "message": "...", "provider": {...}} - generation failed
    - {"type": "pong"} - reply to a client ping

    Incoming messages:
    - "ping" or {"type": "ping"}
    """
    if not await hub.connect(websocket):
        return

    try:
        while True:
            raw_data = await websocket.receive_text()

            try:
                data = json.loads(raw_data)
            except json.JSONDecodeError:
                data = raw_data

            msg_type = data.get("type") if isinstance(data, dict) else data
            if msg_type == "ping":
                await hub.send_personal(websocket, {"type": "pong"})
            else:
                logger.debug("Ignoring client message: %s", raw_data[:200])

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.warning("WebSocket error: %s", e)
    finally:
        hub.unregister(websocket)
