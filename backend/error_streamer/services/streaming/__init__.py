"""
Streaming Services Module.

Provides the periodic generation loop and its fan-out.

Architecture:
- StreamController: run state, timer and tick sequencing
- StreamNotifier: formats messages for the broadcast hub
- StreamStateMachine: Stopped <-> Running transitions

Usage:
    from error_streamer.services.streaming import StreamController

    controller = StreamController(store, resolver, generator, events, notifier)
    await controller.start(interval_ms=2000)
"""

from .types import TickOutcome
from .state import StreamStateMachine
from .notifier import StreamNotifier, status_message
from .controller import StreamController, validate_interval

__all__ = [
    # Types
    "TickOutcome",
    "StreamStateMachine",
    # Services
    "StreamNotifier",
    "StreamController",
    # Helpers
    "status_message",
    "validate_interval",
]
