"""
Service wiring.

Builds the singleton service graph and exposes FastAPI dependency
getters, so tests can swap any piece via app.dependency_overrides.
"""
from error_streamer.services.config_store import ConfigStore
from error_streamer.services.connection_manager import ConnectionManager, manager
from error_streamer.services.event_store import EventStore
from error_streamer.services.generation import GenerationClient
from error_streamer.services.pocketbase import pocketbase
from error_streamer.services.providers import ProviderResolver
from error_streamer.services.streaming import StreamController, StreamNotifier

config_store = ConfigStore(pocketbase)
event_store = EventStore(pocketbase)
resolver = ProviderResolver(config_store)

stream_controller = StreamController(
    config_store=config_store,
    resolver=resolver,
    generator=GenerationClient(),
    event_store=event_store,
    notifier=StreamNotifier(manager),
)
manager.bind_status_source(stream_controller.status_message)


def get_controller() -> StreamController:
    return stream_controller


def get_event_store() -> EventStore:
    return event_store


def get_connection_manager() -> ConnectionManager:
    return manager
