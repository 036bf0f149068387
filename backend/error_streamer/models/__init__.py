"""Models package for the error log streamer."""

from error_streamer.models.events import ErrorCategory, EventRecord
from error_streamer.models.stream import (
    ConfigSnapshot,
    ConfigUpdate,
    ProviderConfig,
    ProviderSettings,
    StartResult,
    StopResult,
    StreamConfig,
    normalize_variation_limit,
)

__all__ = [
    "ErrorCategory",
    "EventRecord",
    "ConfigSnapshot",
    "ConfigUpdate",
    "ProviderConfig",
    "ProviderSettings",
    "StartResult",
    "StopResult",
    "StreamConfig",
    "normalize_variation_limit",
]
