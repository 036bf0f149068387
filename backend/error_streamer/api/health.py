from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from error_streamer.dependencies import get_connection_manager, get_controller
from error_streamer.services.connection_manager import ConnectionManager
from error_streamer.services.streaming import StreamController

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(
    controller: StreamController = Depends(get_controller),
    hub: ConnectionManager = Depends(get_connection_manager),
) -> dict:
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "isStreaming": controller.is_streaming,
        "connectedClients": hub.connection_count,
    }


@router.get("/")
async def root() -> dict:
    return {
        "message": "Error Log Streamer API Server",
        "status": "running",
        "endpoints": {
            "startStream": "GET /api/start-stream?interval=5000",
            "stopStream": "GET /api/stop-stream",
            "getConfig": "GET /api/config",
            "updateConfig": "POST /api/config",
            "generateError": "POST /api/generate-error",
            "getLogs": "GET /api/logs?limit=100&offset=0",
            "purgeLogs": "DELETE /api/logs",
            "getAnalytics": "GET /api/analytics",
            "health": "GET /health",
            "websocket": "WS /ws/stream",
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
