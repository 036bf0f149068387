"""
Tests for ConfigStore persistence.
"""
import pytest

from error_streamer.models.stream import ProviderConfig, ProviderSettings
from error_streamer.services.config_store import ConfigStore
from error_streamer.services.db_init import APP_CONFIG_COLLECTION, PROVIDERS_COLLECTION
from error_streamer.services.pocketbase import PocketbaseError


def providers_by_type(fake_pocketbase) -> dict:
    return {r["provider_type"]: r for r in fake_pocketbase.records(PROVIDERS_COLLECTION)}


class TestStreamConfig:
    """Tests for in-memory stream config updates."""

    def test_update_stream_replaces_fields(self, fake_pocketbase):
        store = ConfigStore(fake_pocketbase)
        before = store.stream

        after = store.update_stream(interval_ms=2000, variation_limit="abc")

        assert after.interval_ms == 2000
        assert after.variation_limit == 10
        assert after.prompt_template == before.prompt_template
        assert store.stream is after

    def test_update_stream_without_changes(self, fake_pocketbase):
        store = ConfigStore(fake_pocketbase)
        before = store.stream

        assert store.update_stream() is before


class TestProviderSettings:
    """Tests for saving and loading provider settings."""

    @pytest.mark.asyncio
    async def test_save_creates_providers(self, fake_pocketbase):
        store = ConfigStore(fake_pocketbase)

        saved, _ = await store.save(ProviderSettings(
            active_provider="gemini",
            providers={
                "gemini": ProviderConfig(model_name="gemini-pro", api_key="k1"),
                "ollama": ProviderConfig(model_name="llama3.2:3b"),
            },
        ))

        assert saved.active_provider == "gemini"
        assert saved.providers["gemini"].api_key == "k1"
        assert saved.providers["ollama"].model_name == "llama3.2:3b"
        assert len(fake_pocketbase.batch_calls) == 1

    @pytest.mark.asyncio
    async def test_switching_active_deactivates_others(self, fake_pocketbase):
        """Test marking one provider active clears the flag on every other one."""
        store = ConfigStore(fake_pocketbase)
        await store.save(ProviderSettings(
            active_provider="gemini",
            providers={"gemini": ProviderConfig(api_key="k1"), "ollama": ProviderConfig()},
        ))

        saved, _ = await store.save(ProviderSettings(active_provider="ollama"))

        records = providers_by_type(fake_pocketbase)
        assert records["ollama"]["is_active"] is True
        assert records["gemini"]["is_active"] is False
        assert saved.active_provider == "ollama"

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_fields(self, fake_pocketbase):
        store = ConfigStore(fake_pocketbase)
        await store.save(ProviderSettings(
            active_provider="gemini",
            providers={"gemini": ProviderConfig(model_name="gemini-pro", api_key="k1")},
        ))

        saved, _ = await store.save(ProviderSettings(
            providers={"gemini": ProviderConfig.model_validate({"apiKey": "k2"})},
        ))

        gemini = saved.providers["gemini"]
        assert gemini.api_key == "k2"
        assert gemini.model_name == "gemini-pro"
        assert saved.active_provider == "gemini"

    @pytest.mark.asyncio
    async def test_failed_batch_persists_nothing(self, fake_pocketbase):
        store = ConfigStore(fake_pocketbase)
        fake_pocketbase.fail_batch = True

        with pytest.raises(PocketbaseError):
            await store.save(
                ProviderSettings(active_provider="ollama", providers={"ollama": ProviderConfig()}),
                {"ERROR_VARIATION_LIMIT": 3},
            )

        assert fake_pocketbase.records(PROVIDERS_COLLECTION) == []
        assert fake_pocketbase.records(APP_CONFIG_COLLECTION) == []


class TestAppConfig:
    """Tests for the key/value app config."""

    @pytest.mark.asyncio
    async def test_save_normalizes_variation_limit(self, fake_pocketbase):
        store = ConfigStore(fake_pocketbase)

        _, app_config = await store.save(app_config={"ERROR_VARIATION_LIMIT": 15, "THEME": "dark"})

        assert app_config == {"ERROR_VARIATION_LIMIT": "10", "THEME": "dark"}

    @pytest.mark.asyncio
    async def test_save_updates_existing_keys(self, fake_pocketbase):
        store = ConfigStore(fake_pocketbase)
        await store.save(app_config={"ERROR_VARIATION_LIMIT": 4})

        _, app_config = await store.save(app_config={"ERROR_VARIATION_LIMIT": "6"})

        assert app_config["ERROR_VARIATION_LIMIT"] == "6"
        assert len(fake_pocketbase.records(APP_CONFIG_COLLECTION)) == 1

    @pytest.mark.asyncio
    async def test_set_app_value_upserts(self, fake_pocketbase):
        store = ConfigStore(fake_pocketbase)

        await store.set_app_value("ACTIVE_PROVIDER", "gemini")
        await store.set_app_value("ACTIVE_PROVIDER", "ollama")

        assert await store.get_app_config() == {"ACTIVE_PROVIDER": "ollama"}


class TestReloadAfterCommit:
    """Tests for a store outage right after the batch commits."""

    @staticmethod
    def fail_reads_after_batch(fake_pocketbase):
        commit = fake_pocketbase.batch

        async def batch_then_outage(requests):
            result = await commit(requests)
            fake_pocketbase.fail_collections = {PROVIDERS_COLLECTION, APP_CONFIG_COLLECTION}
            return result

        fake_pocketbase.batch = batch_then_outage

    @pytest.mark.asyncio
    async def test_returns_expected_state(self, fake_pocketbase):
        store = ConfigStore(fake_pocketbase)
        await store.save(ProviderSettings(
            active_provider="gemini",
            providers={"gemini": ProviderConfig(model_name="gemini-pro", api_key="k1")},
        ))
        self.fail_reads_after_batch(fake_pocketbase)

        saved, app_config = await store.save(
            ProviderSettings(active_provider="ollama", providers={"ollama": ProviderConfig()}),
            {"ERROR_VARIATION_LIMIT": 3},
        )

        assert saved.active_provider == "ollama"
        assert saved.providers["gemini"].model_name == "gemini-pro"
        assert app_config == {"ERROR_VARIATION_LIMIT": "3"}
        assert providers_by_type(fake_pocketbase)["gemini"]["is_active"] is False
