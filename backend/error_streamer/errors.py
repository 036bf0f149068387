"""
Error types shared by the streaming core.

Every component raises one of these at its boundary. Translation to a
wire message happens only in the stream notifier (WebSocket) and the
API layer (REST).
"""
from enum import Enum
from typing import Optional


class StreamerError(Exception):
    """Base class for errors surfaced by the streaming core."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ConfigValidationError(StreamerError):
    """Caller input rejected before anything is applied."""


class ProviderResolutionError(StreamerError):
    """No usable generation backend could be resolved."""


class BackendErrorKind(str, Enum):
    """Failure categories reported by a generation backend call."""

    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    HTTP = "http"
    CONNECTION = "connection"
    EMPTY = "empty"


class BackendError(StreamerError):
    """Network, auth or rate-limit failure from a generation backend."""

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        kind: BackendErrorKind = BackendErrorKind.HTTP,
    ):
        self.provider = provider
        self.status_code = status_code
        self.kind = kind
        super().__init__(message)


class PayloadError(StreamerError):
    """Backend returned text that is not a valid event record."""

    def __init__(self, message: str, raw_text: str = ""):
        self.raw_text = raw_text
        super().__init__(message)


class PersistenceError(StreamerError):
    """Store write or read failed. Never surfaced to subscribers."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)
