"""
Provider Resolver.

Chooses the generation backend for the next tick from stored provider
settings, the persisted app config and environment defaults.

Resolution runs an ordered list of strategies; the first one that
returns Resolved wins. Per-type defaults then fill in model, endpoint
and credential.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol, Union

from error_streamer.config import Settings, settings
from error_streamer.errors import PersistenceError, ProviderResolutionError
from error_streamer.models.stream import (
    ACTIVE_PROVIDER_KEY,
    VARIATION_LIMIT_KEY,
    ProviderConfig,
    ProviderSettings,
)

logger = logging.getLogger(__name__)

FALLBACK_PROVIDER = "gemini"


@dataclass(frozen=True)
class ProviderDefaults:
    """Built-in defaults for one provider type."""

    default_model: str
    default_api_url: Optional[str]
    api_key_setting: str
    requires_api_key: bool = True
    api_url_setting: Optional[str] = None


PROVIDER_DEFAULTS: dict[str, ProviderDefaults] = {
    "gemini": ProviderDefaults(
        default_model="gemini-2.5-flash-preview-05-20",
        default_api_url="https://generativelanguage.googleapis.com",
        api_key_setting="gemini_api_key",
    ),
    "ollama": ProviderDefaults(
        default_model="llama3.1",
        default_api_url="http://localhost:11434",
        api_key_setting="ollama_api_key",
        requires_api_key=False,
        api_url_setting="ollama_host",
    ),
}


@dataclass(frozen=True)
class ResolvedProvider:
    """Concrete backend descriptor handed to the generation client."""

    type: str
    model_name: str
    api_url: str
    api_key: Optional[str] = field(default=None, repr=False)
    source: str = ""

    def summary(self) -> dict[str, Any]:
        """Credential-free view used in status and error messages."""
        return {
            "type": self.type,
            "modelName": self.model_name,
            "apiUrl": self.api_url,
        }


# ==================== Strategies ====================


@dataclass(frozen=True)
class ResolutionContext:
    """Inputs shared by every strategy for one resolution."""

    provider_settings: ProviderSettings
    app_config: dict[str, str]
    env: Settings


@dataclass(frozen=True)
class Resolved:
    provider_type: str
    config: ProviderConfig
    source: str


class NotApplicable:
    def __repr__(self) -> str:
        return "NOT_APPLICABLE"


NOT_APPLICABLE = NotApplicable()

StrategyOutcome = Union[Resolved, NotApplicable]


class ResolutionStrategy(Protocol):
    name: str

    def evaluate(self, ctx: ResolutionContext) -> StrategyOutcome: ...


class ActiveProviderStrategy:
    """Provider explicitly marked active in the stored settings."""

    name = "provider_settings"

    def evaluate(self, ctx: ResolutionContext) -> StrategyOutcome:
        active = ctx.provider_settings.active_provider
        config = ctx.provider_settings.providers.get(active) if active else None
        if config is None:
            return NOT_APPLICABLE
        return Resolved(active, config, self.name)


class AppConfigProviderStrategy:
    """ACTIVE_PROVIDER recorded in the app config store."""

    name = "app_config"

    def evaluate(self, ctx: ResolutionContext) -> StrategyOutcome:
        active = (ctx.app_config.get(ACTIVE_PROVIDER_KEY) or "").strip()
        config = ctx.provider_settings.providers.get(active) if active else None
        if config is None:
            return NOT_APPLICABLE
        return Resolved(active, config, self.name)


class EnvironmentFallbackStrategy:
    """Hard-coded fallback, usable only with an environment credential."""

    name = "environment"

    def __init__(self, provider_type: str = FALLBACK_PROVIDER):
        self.provider_type = provider_type

    def evaluate(self, ctx: ResolutionContext) -> StrategyOutcome:
        defaults = PROVIDER_DEFAULTS[self.provider_type]
        if not getattr(ctx.env, defaults.api_key_setting, None):
            return NOT_APPLICABLE
        return Resolved(self.provider_type, ProviderConfig(), self.name)


DEFAULT_STRATEGIES: tuple[ResolutionStrategy, ...] = (
    ActiveProviderStrategy(),
    AppConfigProviderStrategy(),
    EnvironmentFallbackStrategy(),
)


# ==================== Resolver ====================


class ConfigSource(Protocol):
    """The parts of ConfigStore the resolver depends on."""

    async def get_provider_settings(self) -> ProviderSettings: ...
    async def get_app_config(self) -> dict[str, str]: ...
    async def set_app_value(self, key: str, value: str) -> None: ...
    def update_stream(self, variation_limit: Optional[Any] = None, **kwargs: Any): ...


def complete_provider(
    provider_type: str,
    config: ProviderConfig,
    env: Settings,
    source: str = "",
) -> ResolvedProvider:
    """
    Fill missing model, endpoint and credential from per-type defaults.

    Raises ProviderResolutionError for unsupported types, a missing
    required credential or an undeterminable endpoint.
    """
    defaults = PROVIDER_DEFAULTS.get(provider_type)
    if defaults is None:
        raise ProviderResolutionError(f'Unsupported AI provider "{provider_type}"')

    env_url = getattr(env, defaults.api_url_setting, None) if defaults.api_url_setting else None
    api_url = (config.api_url or env_url or defaults.default_api_url or "").strip().rstrip("/")
    if not api_url:
        raise ProviderResolutionError(f"No API URL configured for provider {provider_type}")

    api_key = config.api_key or getattr(env, defaults.api_key_setting, None)
    if defaults.requires_api_key and not api_key:
        raise ProviderResolutionError(
            f"{provider_type.capitalize()} API key is not configured. "
            "Please set it in the Settings page or environment."
        )

    return ResolvedProvider(
        type=provider_type,
        model_name=config.model_name or defaults.default_model,
        api_url=api_url,
        api_key=api_key or None,
        source=source,
    )


class ProviderResolver:
    """
    Resolves and caches the backend descriptor for generation calls.

    The cache lives for cache_ttl seconds or until invalidate() is called.
    """

    def __init__(
        self,
        config_store: ConfigSource,
        env: Settings = settings,
        strategies: Optional[tuple[ResolutionStrategy, ...]] = None,
        cache_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = config_store
        self._env = env
        self._strategies = strategies or DEFAULT_STRATEGIES
        self._cache_ttl = env.provider_cache_ttl_seconds if cache_ttl is None else cache_ttl
        self._clock = clock
        self._cached: Optional[ResolvedProvider] = None
        self._cached_at = 0.0

    @property
    def cached(self) -> Optional[ResolvedProvider]:
        """Last successful resolution, if still cached."""
        return self._cached

    def invalidate(self) -> None:
        """Drop the cached provider so the next resolve() starts fresh."""
        self._cached = None

    async def resolve(self) -> ResolvedProvider:
        """Return the provider to use for the next generation call."""
        if self._cached and self._clock() - self._cached_at < self._cache_ttl:
            return self._cached

        provider_settings, app_config = await self._load_inputs()
        ctx = ResolutionContext(provider_settings, app_config, self._env)

        outcome: StrategyOutcome = NOT_APPLICABLE
        for strategy in self._strategies:
            outcome = strategy.evaluate(ctx)
            if isinstance(outcome, Resolved):
                break

        if not isinstance(outcome, Resolved):
            raise ProviderResolutionError(
                "No AI provider configured. Add one in Settings or set GEMINI_API_KEY."
            )

        resolved = complete_provider(outcome.provider_type, outcome.config, self._env, outcome.source)
        logger.info(
            "Resolved provider %s (model %s) via %s",
            resolved.type,
            resolved.model_name,
            resolved.source,
        )

        await self._remember_active(resolved.type, app_config)
        if VARIATION_LIMIT_KEY in app_config:
            self._store.update_stream(variation_limit=app_config[VARIATION_LIMIT_KEY])

        self._cached = resolved
        self._cached_at = self._clock()
        return resolved

    async def _load_inputs(self) -> tuple[ProviderSettings, dict[str, str]]:
        # Store outages must not block the environment fallback
        try:
            provider_settings = await self._store.get_provider_settings()
        except PersistenceError as e:
            logger.warning("Could not load provider settings: %s", e.message)
            provider_settings = ProviderSettings()

        try:
            app_config = await self._store.get_app_config()
        except PersistenceError as e:
            logger.warning("Could not load app config: %s", e.message)
            app_config = {}

        return provider_settings, app_config

    async def _remember_active(self, provider_type: str, app_config: dict[str, str]) -> None:
        if app_config.get(ACTIVE_PROVIDER_KEY) == provider_type:
            return
        try:
            await self._store.set_app_value(ACTIVE_PROVIDER_KEY, provider_type)
        except PersistenceError as e:
            logger.error("Failed to record active provider %s: %s", provider_type, e.message)
