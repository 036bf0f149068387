"""
Streaming Types.

Data structures describing the result of one tick.
"""
from dataclasses import dataclass
from typing import Optional

from error_streamer.models.events import EventRecord


@dataclass(frozen=True)
class TickOutcome:
    """
    Result of one generate -> persist -> broadcast cycle.

    Exactly one of event / error is set.
    """

    event: Optional[EventRecord] = None
    error: Optional[str] = None
    persisted: bool = False
    delivered: int = 0

    @property
    def ok(self) -> bool:
        return self.event is not None
