"""
Config Store.

Single source of truth for current settings:
- StreamConfig lives in memory and is read by every tick
- Provider settings and app config are persisted in Pocketbase
"""
import copy
import logging
from typing import Any, Optional

from error_streamer.config import settings
from error_streamer.errors import PersistenceError
from error_streamer.models.stream import (
    VARIATION_LIMIT_KEY,
    ProviderConfig,
    ProviderSettings,
    StreamConfig,
    normalize_variation_limit,
)
from error_streamer.services.db_init import APP_CONFIG_COLLECTION, PROVIDERS_COLLECTION
from error_streamer.services.pocketbase import PocketbaseService, pocketbase, records_path

logger = logging.getLogger(__name__)

# ProviderConfig field -> ai_provider_settings column
_PROVIDER_COLUMNS = {
    "model_name": "model_name",
    "api_url": "api_url",
    "api_key": "api_key",
}


class ConfigStore:
    """
    Holds the streaming configuration and the persisted settings snapshot.

    All persisted writes made by save() go through one Pocketbase batch,
    so either every change lands or none does.
    """

    def __init__(
        self,
        client: PocketbaseService = pocketbase,
        stream_config: Optional[StreamConfig] = None,
    ):
        self._client = client
        self._stream = stream_config or StreamConfig(interval_ms=settings.default_interval_ms)

    # ==================== Stream config ====================

    @property
    def stream(self) -> StreamConfig:
        """Current stream configuration (treat as read-only)."""
        return self._stream

    def update_stream(
        self,
        interval_ms: Optional[int] = None,
        prompt_template: Optional[str] = None,
        variation_limit: Optional[Any] = None,
    ) -> StreamConfig:
        """Replace the in-memory stream config with the given fields changed."""
        changes: dict[str, Any] = {}
        if interval_ms is not None:
            changes["interval_ms"] = interval_ms
        if prompt_template is not None:
            changes["prompt_template"] = prompt_template
        if variation_limit is not None:
            changes["variation_limit"] = normalize_variation_limit(variation_limit)

        if changes:
            self._stream = self._stream.model_copy(update=changes)
            logger.debug("Stream config updated: %s", sorted(changes))
        return self._stream

    # ==================== Persisted settings ====================

    async def _provider_records(self) -> dict[str, dict]:
        result = await self._client.list_records(
            PROVIDERS_COLLECTION, sort="provider_type", per_page=200
        )
        return {item["provider_type"]: item for item in (result or {}).get("items", [])}

    async def _app_config_records(self) -> dict[str, dict]:
        result = await self._client.list_records(APP_CONFIG_COLLECTION, sort="key", per_page=200)
        return {item["key"]: item for item in (result or {}).get("items", [])}

    @staticmethod
    def _to_provider_settings(records: dict[str, dict]) -> ProviderSettings:
        providers: dict[str, ProviderConfig] = {}
        active: Optional[str] = None
        for provider_type, record in records.items():
            providers[provider_type] = ProviderConfig(
                model_name=record.get("model_name") or None,
                api_url=record.get("api_url") or None,
                api_key=record.get("api_key") or None,
            )
            if record.get("is_active"):
                active = provider_type
        return ProviderSettings(active_provider=active, providers=providers)

    @staticmethod
    def _to_app_config(records: dict[str, dict]) -> dict[str, str]:
        return {key: record.get("value", "") for key, record in records.items()}

    async def get_provider_settings(self) -> ProviderSettings:
        """Load all stored providers and the active one."""
        return self._to_provider_settings(await self._provider_records())

    async def get_app_config(self) -> dict[str, str]:
        """Load the key/value app config snapshot."""
        return self._to_app_config(await self._app_config_records())

    async def set_app_value(self, key: str, value: str) -> None:
        """Upsert a single app config value."""
        records = await self._app_config_records()
        existing = records.get(key)
        if existing:
            if existing.get("value") == value:
                return
            await self._client.update_record(APP_CONFIG_COLLECTION, existing["id"], {"value": value})
        else:
            await self._client.create_record(APP_CONFIG_COLLECTION, {"key": key, "value": value})
        logger.info("App config %s set to %s", key, value)

    async def save(
        self,
        provider_settings: Optional[ProviderSettings] = None,
        app_config: Optional[dict[str, Any]] = None,
    ) -> tuple[ProviderSettings, dict[str, str]]:
        """
        Persist provider and app config changes in one transaction.

        Provider entries are merged field by field over the stored ones.
        When active_provider is given, that provider is marked active and
        every other stored provider is deactivated.

        Returns the reloaded (provider_settings, app_config). Once the
        batch has committed this never raises: if the reload fails, the
        state the batch was built to produce is returned instead.
        """
        provider_records = await self._provider_records()
        app_records = await self._app_config_records()

        requests: list[dict] = []
        if provider_settings is not None:
            requests.extend(self._provider_requests(provider_settings, provider_records))
        if app_config:
            requests.extend(self._app_config_requests(app_config, app_records))

        if not requests:
            return self._to_provider_settings(provider_records), self._to_app_config(app_records)

        await self._client.batch(requests)
        logger.info("Persisted %d config changes", len(requests))

        try:
            return await self.get_provider_settings(), await self.get_app_config()
        except PersistenceError as e:
            logger.warning("Config saved but reload failed, using expected state: %s", e.message)
            return self._to_provider_settings(provider_records), self._to_app_config(app_records)

    @staticmethod
    def _provider_requests(update: ProviderSettings, records: dict[str, dict]) -> list[dict]:
        """Build batch requests; records is updated to the state they produce."""
        active = update.active_provider
        existing = copy.deepcopy(records)
        requests = []

        for provider_type, config in update.providers.items():
            body = {
                _PROVIDER_COLUMNS[name]: value or ""
                for name, value in config.model_dump(exclude_unset=True).items()
            }
            if active is not None:
                body["is_active"] = provider_type == active

            record = existing.get(provider_type)
            if record:
                requests.append({
                    "method": "PATCH",
                    "url": records_path(PROVIDERS_COLLECTION, record["id"]),
                    "body": body,
                })
                records[provider_type].update(body)
            else:
                body.setdefault("is_active", False)
                body = {"provider_type": provider_type, **body}
                requests.append({
                    "method": "POST",
                    "url": records_path(PROVIDERS_COLLECTION),
                    "body": body,
                })
                records[provider_type] = dict(body)

        if active is not None:
            for provider_type, record in existing.items():
                if provider_type in update.providers:
                    continue
                should_be_active = provider_type == active
                if bool(record.get("is_active")) != should_be_active:
                    requests.append({
                        "method": "PATCH",
                        "url": records_path(PROVIDERS_COLLECTION, record["id"]),
                        "body": {"is_active": should_be_active},
                    })
                    records[provider_type]["is_active"] = should_be_active

        return requests

    @staticmethod
    def _app_config_requests(values: dict[str, Any], records: dict[str, dict]) -> list[dict]:
        """Build batch requests; records is updated to the state they produce."""
        requests = []

        for key, value in values.items():
            if key == VARIATION_LIMIT_KEY:
                value = normalize_variation_limit(value)
            text = "" if value is None else str(value)

            record = records.get(key)
            if record:
                requests.append({
                    "method": "PATCH",
                    "url": records_path(APP_CONFIG_COLLECTION, record["id"]),
                    "body": {"value": text},
                })
                records[key] = {**record, "value": text}
            else:
                requests.append({
                    "method": "POST",
                    "url": records_path(APP_CONFIG_COLLECTION),
                    "body": {"key": key, "value": text},
                })
                records[key] = {"key": key, "value": text}

        return requests
