"""
Stream control endpoints.

Start/stop the generation loop, read and update configuration, and run
a single generation outside the loop.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from error_streamer.dependencies import get_controller
from error_streamer.errors import StreamerError
from error_streamer.models.stream import ConfigUpdate
from error_streamer.services.streaming import StreamController

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["stream"])


@router.get("/start-stream")
async def start_stream(
    interval: Optional[int] = None,
    controller: StreamController = Depends(get_controller),
) -> dict:
    """
    Start the generation loop.

    Example:
        curl "http://localhost:3000/api/start-stream?interval=5000"
    """
    result = await controller.start(interval)
    return {
        "success": result.started,
        "message": result.message,
        "interval": result.effective_interval_ms,
    }


@router.get("/stop-stream")
async def stop_stream(controller: StreamController = Depends(get_controller)) -> dict:
    """Stop the generation loop."""
    result = await controller.stop()
    return {"success": result.stopped, "message": result.message}


@router.get("/config")
async def get_config(controller: StreamController = Depends(get_controller)) -> dict:
    """Current stream config plus persisted provider settings and app config."""
    try:
        snapshot = await controller.snapshot()
    except StreamerError as e:
        logger.error("Error fetching config: %s", e.message)
        raise HTTPException(status_code=500, detail="Failed to fetch config")
    return snapshot.to_wire()


@router.post("/config")
async def set_config(
    update: ConfigUpdate,
    controller: StreamController = Depends(get_controller),
) -> dict:
    """
    Update any of interval, template, providerSettings, appConfig.

    Interval outside [1000, 10000] ms is rejected with 400.
    """
    snapshot = await controller.configure(update)
    wire = snapshot.to_wire()
    return {
        "success": True,
        "config": {
            "interval": wire["interval"],
            "template": wire["template"],
            "variationLimit": wire["variationLimit"],
        },
        "providerSettings": wire["providerSettings"],
        "appConfig": wire["appConfig"],
    }


@router.post("/generate-error")
async def generate_error(controller: StreamController = Depends(get_controller)) -> dict:
    """Generate and store one event without touching the stream."""
    try:
        event = await controller.generate_once()
    except StreamerError as e:
        logger.error("Error generating log: %s", e.message)
        raise HTTPException(status_code=500, detail=e.message)
    return {"event": event.to_wire()}
