"""
Stream run state.

Uses python-statemachine so illegal transitions (start while running,
stop while stopped) raise instead of silently corrupting state.
"""
import logging

from statemachine import State, StateMachine

logger = logging.getLogger(__name__)


class StreamStateMachine(StateMachine):
    """Stopped <-> Running."""

    stopped = State("Stopped", initial=True)
    running = State("Running")

    start = stopped.to(running)
    stop = running.to(stopped)

    def after_transition(self, event: str, source: State, target: State) -> None:
        logger.info("Stream %s: %s -> %s", event, source.id, target.id)

    @property
    def is_running(self) -> bool:
        return self.running.is_active
