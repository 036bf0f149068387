"""
Stream Controller.

Owns the run state and the timer, and sequences each tick:
resolve provider -> generate -> parse -> persist -> broadcast.

All work happens on the event loop. Ticks never overlap: the loop arms
the next tick only after the previous one returns, and a lock guards
the tick body against a manual restart racing a tick in flight.
"""
import asyncio
import logging
from typing import Any, Callable, Optional

from error_streamer.config import INTERVAL_MAX_MS, INTERVAL_MIN_MS
from error_streamer.errors import (
    BackendError,
    ConfigValidationError,
    PayloadError,
    PersistenceError,
    ProviderResolutionError,
    StreamerError,
)
from error_streamer.models.events import EventRecord
from error_streamer.models.stream import (
    ACTIVE_PROVIDER_KEY,
    VARIATION_LIMIT_KEY,
    ConfigSnapshot,
    ConfigUpdate,
    ProviderSettings,
    StartResult,
    StopResult,
)
from error_streamer.services.config_store import ConfigStore
from error_streamer.services.event_factory import build_event
from error_streamer.services.event_store import EventStore
from error_streamer.services.generation import GenerationClient
from error_streamer.services.providers import PROVIDER_DEFAULTS, ProviderResolver

from .notifier import StreamNotifier, status_message
from .state import StreamStateMachine
from .types import TickOutcome

logger = logging.getLogger(__name__)

EventFactory = Callable[[str, str], EventRecord]


def validate_interval(interval_ms: Any) -> int:
    """Reject intervals outside [1000, 10000] ms."""
    if isinstance(interval_ms, bool) or not isinstance(interval_ms, int):
        raise ConfigValidationError("Interval must be an integer number of milliseconds")
    if interval_ms < INTERVAL_MIN_MS or interval_ms > INTERVAL_MAX_MS:
        raise ConfigValidationError(
            f"Interval must be between {INTERVAL_MIN_MS}ms (1s) and {INTERVAL_MAX_MS}ms (10s)"
        )
    return interval_ms


class StreamController:
    """
    State machine tying provider resolution, generation, persistence and
    broadcast together.

    Public operations: start, stop, configure, generate_once, plus
    status_message for the hub's connect snapshot.
    """

    def __init__(
        self,
        config_store: ConfigStore,
        resolver: ProviderResolver,
        generator: GenerationClient,
        event_store: EventStore,
        notifier: StreamNotifier,
        event_factory: EventFactory = build_event,
    ):
        self._store = config_store
        self._resolver = resolver
        self._generator = generator
        self._events = event_store
        self._notifier = notifier
        self._event_factory = event_factory

        self._machine = StreamStateMachine()
        self._task: Optional[asyncio.Task] = None
        self._loop_tasks: set[asyncio.Task] = set()
        self._sleeping_task: Optional[asyncio.Task] = None
        self._run_token = 0
        self._effective_interval_ms = config_store.stream.interval_ms
        self._next_tick_at = 0.0
        self._tick_lock = asyncio.Lock()
        self._provider_summary: Optional[dict[str, Any]] = None

    # ==================== State ====================

    @property
    def is_streaming(self) -> bool:
        return self._machine.is_running

    @property
    def interval_ms(self) -> int:
        """Interval in effect: the running timer's, else the configured one."""
        if self.is_streaming:
            return self._effective_interval_ms
        return self._store.stream.interval_ms

    def status_message(self) -> dict[str, Any]:
        """Snapshot sent to new subscribers and after state changes."""
        return status_message(self.is_streaming, self.interval_ms, self._provider_summary)

    async def _broadcast_status(self) -> None:
        await self._notifier.notify_status(
            self.is_streaming, self.interval_ms, self._provider_summary
        )

    # ==================== Start / Stop ====================

    async def start(self, interval_ms: Optional[int] = None) -> StartResult:
        """
        Start streaming.

        The first tick runs without delay at the head of the loop task,
        which is scheduled before this returns; later ticks follow every
        interval_ms. No-op if already running.
        """
        if self.is_streaming:
            return StartResult(
                started=False,
                effective_interval_ms=self._effective_interval_ms,
                message="Stream is already running",
            )

        if interval_ms is not None:
            effective = validate_interval(interval_ms)
        else:
            effective = self._store.stream.interval_ms

        self._machine.start()
        self._effective_interval_ms = effective
        self._spawn_loop(immediate=True)
        logger.info("Stream started with interval %dms", effective)

        await self._broadcast_status()
        return StartResult(started=True, effective_interval_ms=effective, message="Stream started")

    async def stop(self) -> StopResult:
        """
        Stop streaming. No-op if already stopped.

        A tick already in flight finishes (persist and broadcast included).
        """
        if not self.is_streaming:
            return StopResult(stopped=False, message="Stream is not running")

        self._machine.stop()
        self._run_token += 1
        self._cancel_timer()
        self._task = None
        logger.info("Stream stopped")

        await self._broadcast_status()
        return StopResult(stopped=True, message="Stream stopped")

    async def shutdown(self) -> None:
        """
        Stop and wait for every loop task to exit (application shutdown).

        Unlike stop(), a tick still in flight is cancelled, including one
        left draining by an earlier stop().
        """
        if self.is_streaming:
            await self.stop()
        pending = [task for task in self._loop_tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.info("Cancelled %d stream loop task(s)", len(pending))

    def _spawn_loop(self, immediate: bool) -> None:
        self._run_token += 1
        task = asyncio.create_task(
            self._run_loop(self._run_token, immediate=immediate),
            name=f"error-stream-{self._run_token}",
        )
        self._loop_tasks.add(task)
        task.add_done_callback(self._loop_tasks.discard)
        self._task = task

    def _cancel_timer(self) -> None:
        # Only a sleeping loop is cancelled; a tick in flight runs to completion
        task = self._task
        if task is not None and self._sleeping_task is task:
            task.cancel()

    def _rearm(self, interval_ms: int) -> None:
        """Restart the timer so the next tick fires interval_ms from now."""
        loop = asyncio.get_running_loop()
        self._effective_interval_ms = interval_ms
        self._next_tick_at = loop.time() + interval_ms / 1000

        if self._task is not None and self._sleeping_task is self._task:
            self._task.cancel()
            self._spawn_loop(immediate=False)
        logger.info("Stream timer re-armed with interval %dms", interval_ms)

    async def _run_loop(self, token: int, immediate: bool) -> None:
        loop = asyncio.get_running_loop()
        if immediate:
            self._next_tick_at = loop.time()

        current = asyncio.current_task()
        while token == self._run_token:
            delay = self._next_tick_at - loop.time()
            if delay > 0:
                self._sleeping_task = current
                try:
                    await asyncio.sleep(delay)
                except asyncio.CancelledError:
                    return
                finally:
                    if self._sleeping_task is current:
                        self._sleeping_task = None
                if token != self._run_token:
                    return

            self._next_tick_at += self._effective_interval_ms / 1000
            try:
                await self.tick()
            except Exception:
                logger.exception("Unexpected failure in stream loop")

            # Skip slots missed while a slow tick was running
            now = loop.time()
            step = self._effective_interval_ms / 1000
            while self._next_tick_at <= now:
                self._next_tick_at += step

    # ==================== Tick ====================

    async def tick(self) -> TickOutcome:
        """
        Run one generate -> persist -> broadcast cycle.

        Never raises: failures are broadcast as error messages.
        """
        async with self._tick_lock:
            provider_summary: Optional[dict[str, Any]] = None
            try:
                provider = await self._resolver.resolve()
                provider_summary = provider.summary()
                self._provider_summary = provider_summary

                raw_text = await self._generator.generate(provider, self._store.stream.render_prompt())
                event = self._event_factory(raw_text, provider.type)

            except ProviderResolutionError as e:
                logger.warning("Provider resolution failed: %s", e.message)
                return await self._tick_failed(e.message, None)

            except BackendError as e:
                logger.warning(
                    "Backend call failed (provider=%s, kind=%s, status=%s): %s",
                    e.provider,
                    e.kind.value,
                    e.status_code,
                    e.message,
                )
                return await self._tick_failed(e.message, provider_summary)

            except PayloadError as e:
                logger.warning("Invalid payload from backend: %s", e.message)
                return await self._tick_failed(e.message, provider_summary)

            except StreamerError as e:
                logger.warning("Tick failed: %s", e.message)
                return await self._tick_failed(e.message, provider_summary)

            except Exception as e:
                logger.exception("Error generating log")
                return await self._tick_failed(str(e) or "Failed to generate error log", provider_summary)

            persisted = await self._events.write(event)
            delivered = await self._notifier.notify_event(event)
            return TickOutcome(event=event, persisted=persisted, delivered=delivered)

    async def _tick_failed(self, message: str, provider: Optional[dict[str, Any]]) -> TickOutcome:
        delivered = await self._notifier.notify_error(message, provider)
        return TickOutcome(error=message, delivered=delivered)

    async def generate_once(self) -> EventRecord:
        """
        One generation and persist cycle, outside the timer.

        Does not broadcast and does not touch run state.

        Raises:
            ProviderResolutionError, BackendError, PayloadError
        """
        provider = await self._resolver.resolve()
        self._provider_summary = provider.summary()

        raw_text = await self._generator.generate(provider, self._store.stream.render_prompt())
        event = self._event_factory(raw_text, provider.type)

        await self._events.write(event)
        return event

    # ==================== Configure ====================

    async def snapshot(self) -> ConfigSnapshot:
        """Current config with the persisted settings."""
        provider_settings = await self._store.get_provider_settings()
        app_config = await self._store.get_app_config()
        return self._build_snapshot(provider_settings, app_config)

    def _build_snapshot(
        self,
        provider_settings: ProviderSettings,
        app_config: dict[str, str],
    ) -> ConfigSnapshot:
        stream = self._store.stream
        return ConfigSnapshot(
            interval=stream.interval_ms,
            template=stream.prompt_template,
            variation_limit=stream.variation_limit,
            is_streaming=self.is_streaming,
            provider_settings=provider_settings,
            app_config=app_config,
        )

    async def _validate(self, update: ConfigUpdate) -> None:
        if update.interval is not None:
            validate_interval(update.interval)

        if update.template is not None and not update.template.strip():
            raise ConfigValidationError("Template cannot be empty")

        settings_update = update.provider_settings
        if settings_update is not None:
            for provider_type in settings_update.providers:
                if provider_type not in PROVIDER_DEFAULTS:
                    raise ConfigValidationError(f'Unsupported AI provider "{provider_type}"')

            active = settings_update.active_provider
            if active is not None:
                if active not in PROVIDER_DEFAULTS:
                    raise ConfigValidationError(f'Unsupported AI provider "{active}"')
                if active not in settings_update.providers:
                    stored = await self._store.get_provider_settings()
                    if active not in stored.providers:
                        raise ConfigValidationError(
                            f"Active provider {active} has no stored configuration"
                        )

        if update.app_config:
            active = update.app_config.get(ACTIVE_PROVIDER_KEY)
            if active and active not in PROVIDER_DEFAULTS:
                raise ConfigValidationError(f'Unsupported AI provider "{active}"')

    async def configure(self, update: ConfigUpdate) -> ConfigSnapshot:
        """
        Apply a partial config update atomically.

        Everything is validated first, then provider and app config changes
        are persisted in one transaction, then in-memory fields change.
        A failure at any step leaves the current config untouched and
        broadcasts nothing.

        Raises:
            ConfigValidationError: bad input
            PersistenceError: the store rejected the update
        """
        await self._validate(update)

        persists = update.provider_settings is not None or bool(update.app_config)
        if persists:
            provider_settings, app_config = await self._store.save(
                update.provider_settings, update.app_config
            )
        else:
            try:
                provider_settings = await self._store.get_provider_settings()
                app_config = await self._store.get_app_config()
            except PersistenceError as e:
                logger.warning("Could not load persisted settings: %s", e.message)
                provider_settings, app_config = ProviderSettings(), {}

        variation_limit = None
        if update.app_config and VARIATION_LIMIT_KEY in update.app_config:
            variation_limit = update.app_config[VARIATION_LIMIT_KEY]

        self._store.update_stream(
            interval_ms=update.interval,
            prompt_template=update.template,
            variation_limit=variation_limit,
        )

        if (
            update.interval is not None
            and self.is_streaming
            and update.interval != self._effective_interval_ms
        ):
            self._rearm(update.interval)

        if persists:
            self._resolver.invalidate()
            await self.refresh_provider()

        await self._broadcast_status()
        return self._build_snapshot(provider_settings, app_config)

    async def refresh_provider(self) -> Optional[dict[str, Any]]:
        """Re-resolve the provider summary shown in status messages."""
        try:
            provider = await self._resolver.resolve()
        except StreamerError as e:
            logger.warning("No provider available: %s", e.message)
            self._provider_summary = None
        else:
            self._provider_summary = provider.summary()
        return self._provider_summary
