"""
Recorded event endpoints.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from error_streamer.dependencies import get_event_store
from error_streamer.errors import PersistenceError
from error_streamer.services.event_store import EventStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["logs"])


@router.get("/logs")
async def get_logs(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    events: EventStore = Depends(get_event_store),
) -> dict:
    """Recorded events, newest first."""
    try:
        logs = await events.list_events(limit=limit, offset=offset)
    except PersistenceError as e:
        logger.error("Error fetching logs: %s", e.message)
        raise HTTPException(status_code=500, detail="Failed to fetch logs")
    return {"logs": logs}


@router.get("/analytics")
async def get_analytics(events: EventStore = Depends(get_event_store)) -> dict:
    """Per-category counts with first and last occurrence."""
    try:
        analytics = await events.analytics()
    except PersistenceError as e:
        logger.error("Error fetching analytics: %s", e.message)
        raise HTTPException(status_code=500, detail="Failed to fetch analytics")
    return {"analytics": analytics}


@router.delete("/logs")
async def purge_logs(events: EventStore = Depends(get_event_store)) -> dict:
    """Delete every recorded event. The stream keeps running."""
    try:
        deleted = await events.purge_all()
    except PersistenceError as e:
        logger.error("Error purging logs: %s", e.message)
        raise HTTPException(status_code=500, detail="Failed to purge logs")
    return {"success": True, "deleted": deleted}
