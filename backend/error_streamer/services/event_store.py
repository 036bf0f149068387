"""
Event Store.

Durable record of generated events. Writes are best-effort: a store
outage is logged and never reaches the live stream.
"""
import logging
from typing import Any

from error_streamer.models.events import ErrorCategory, EventRecord
from error_streamer.services.db_init import EVENTS_COLLECTION
from error_streamer.services.pocketbase import (
    PocketbaseError,
    PocketbaseService,
    pocketbase,
    records_path,
)

logger = logging.getLogger(__name__)

PURGE_PAGE_SIZE = 200
PURGE_BATCH_SIZE = 50


class EventStore:
    """Persistence gateway for the error_logs collection."""

    def __init__(self, client: PocketbaseService = pocketbase):
        self._client = client

    async def write(self, event: EventRecord) -> bool:
        """
        Insert one event.

        Returns True when stored. Never raises.
        """
        try:
            record = await self._client.create_record(EVENTS_COLLECTION, event.to_store_record())
        except PocketbaseError as e:
            logger.error("Database save error (non-fatal): %s", e.message)
            return False
        except Exception:
            logger.exception("Unexpected database save error (non-fatal)")
            return False

        logger.debug("Event saved, id: %s", (record or {}).get("id"))
        return True

    async def list_events(self, limit: int = 100, offset: int = 0) -> list[dict[str, Any]]:
        """Recorded events, newest first."""
        limit = max(1, min(limit, 500))
        offset = max(0, offset)

        # Pocketbase pages are 1-based; an unaligned window spans two pages
        page, skip = offset // limit + 1, offset % limit
        items = await self._list_page(page, limit)
        if skip and len(items) == limit:
            items += await self._list_page(page + 1, limit)
        return items[skip:skip + limit]

    async def _list_page(self, page: int, per_page: int) -> list[dict[str, Any]]:
        result = await self._client.list_records(
            EVENTS_COLLECTION, sort="-created", page=page, per_page=per_page
        )
        return (result or {}).get("items", [])

    async def analytics(self) -> list[dict[str, Any]]:
        """Per-category count with first and last occurrence."""
        rows = []
        for category in ErrorCategory:
            flt = f'error_category="{category.value}"'
            first = await self._client.list_records(
                EVENTS_COLLECTION, filter=flt, sort="timestamp", per_page=1, fields="timestamp"
            )
            count = first.get("totalItems", 0)
            if not count:
                continue

            last = await self._client.list_records(
                EVENTS_COLLECTION, filter=flt, sort="-timestamp", per_page=1, fields="timestamp"
            )
            rows.append({
                "error_category": category.value,
                "count": count,
                "first_occurrence": first["items"][0]["timestamp"],
                "last_occurrence": last["items"][0]["timestamp"],
            })
        return rows

    async def purge_all(self) -> int:
        """Delete every recorded event. Returns the number deleted."""
        deleted = 0
        while True:
            result = await self._client.list_records(
                EVENTS_COLLECTION, per_page=PURGE_PAGE_SIZE, fields="id"
            )
            ids = [item["id"] for item in (result or {}).get("items", [])]
            if not ids:
                break

            for start in range(0, len(ids), PURGE_BATCH_SIZE):
                chunk = ids[start:start + PURGE_BATCH_SIZE]
                await self._client.batch([
                    {"method": "DELETE", "url": records_path(EVENTS_COLLECTION, rid)}
                    for rid in chunk
                ])
                deleted += len(chunk)

        logger.info("Purged %d recorded events", deleted)
        return deleted
