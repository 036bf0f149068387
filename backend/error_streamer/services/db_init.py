"""
Store bootstrap.

Makes sure the collections the streamer writes to exist, and switches on
the batch API that config saves rely on. Safe to run on every startup.
"""
import logging

from error_streamer.models.events import ErrorCategory
from error_streamer.services.pocketbase import PocketbaseError, PocketbaseService, pocketbase

logger = logging.getLogger(__name__)

EVENTS_COLLECTION = "error_logs"
PROVIDERS_COLLECTION = "ai_provider_settings"
APP_CONFIG_COLLECTION = "app_config"

_AUTODATE_FIELDS = [
    {"name": "created", "type": "autodate", "onCreate": True, "onUpdate": False},
    {"name": "updated", "type": "autodate", "onCreate": True, "onUpdate": True},
]

# name -> fields and indexes
COLLECTIONS = {
    EVENTS_COLLECTION: {
        "fields": [
            {"name": "timestamp", "type": "date", "required": True},
            {"name": "error_code", "type": "text"},
            {"name": "error", "type": "text"},
            {
                "name": "error_category",
                "type": "select",
                "maxSelect": 1,
                "values": [c.value for c in ErrorCategory],
            },
            {"name": "error_location", "type": "text"},
            {"name": "api_name", "type": "text"},
            {"name": "error_reason", "type": "text"},
            {"name": "aws_cluster", "type": "text"},
            {"name": "action_to_be_taken", "type": "text"},
            {"name": "correlation_id", "type": "text"},
            {"name": "order_id", "type": "text"},
            {"name": "service_name", "type": "text"},
            {"name": "error_stack_trace", "type": "text"},
            *_AUTODATE_FIELDS,
        ],
        "indexes": [
            "CREATE INDEX idx_error_logs_timestamp ON error_logs (timestamp)",
            "CREATE INDEX idx_error_logs_category ON error_logs (error_category)",
            "CREATE INDEX idx_error_logs_service ON error_logs (service_name)",
        ],
    },
    PROVIDERS_COLLECTION: {
        "fields": [
            {"name": "provider_type", "type": "text", "required": True},
            {"name": "model_name", "type": "text"},
            {"name": "api_url", "type": "text"},
            {"name": "api_key", "type": "text"},
            {"name": "is_active", "type": "bool"},
            *_AUTODATE_FIELDS,
        ],
        "indexes": [
            "CREATE UNIQUE INDEX idx_provider_type ON ai_provider_settings (provider_type)",
        ],
    },
    APP_CONFIG_COLLECTION: {
        "fields": [
            {"name": "key", "type": "text", "required": True},
            {"name": "value", "type": "text"},
            *_AUTODATE_FIELDS,
        ],
        "indexes": ["CREATE UNIQUE INDEX idx_app_config_key ON app_config (key)"],
    },
}


async def _ensure(client: PocketbaseService, name: str, schema: dict) -> bool:
    try:
        await client.create_collection(name, schema["fields"], schema.get("indexes"))
    except PocketbaseError as e:
        logger.error("Could not create collection %s: %s", name, e.message)
        return False
    logger.info("Collection %s created", name)
    return True


async def init_database(client: PocketbaseService = pocketbase) -> list[str]:
    """
    Create missing collections.

    Returns the names created on this run. Collection listing errors are
    logged and treated as "nothing exists yet".
    """
    try:
        await client.enable_batch()
    except PocketbaseError as e:
        logger.warning("Batch API not enabled (%s); config saves will fail", e.message)

    try:
        present = {c.get("name") for c in await client.list_collections()}
    except PocketbaseError as e:
        logger.error("Could not list collections: %s", e.message)
        present = set()

    missing = [name for name in COLLECTIONS if name not in present]
    created = [name for name in missing if await _ensure(client, name, COLLECTIONS[name])]

    logger.info(
        "Store ready: %d collections present, %d created",
        len(COLLECTIONS) - len(missing),
        len(created),
    )
    return created
