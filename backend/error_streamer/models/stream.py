"""
Streaming Configuration Models.

In-memory stream settings, persisted provider settings and the
request/response shapes of the configure operation.
"""
import math
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

VARIATION_LIMIT_MIN = 1
VARIATION_LIMIT_MAX = 10
DEFAULT_VARIATION_LIMIT = 10

VARIATION_PLACEHOLDER = "{{VARIATION_LIMIT}}"

# App config keys
ACTIVE_PROVIDER_KEY = "ACTIVE_PROVIDER"
VARIATION_LIMIT_KEY = "ERROR_VARIATION_LIMIT"

DEFAULT_PROMPT_TEMPLATE = """You are a streaming data generator. Produce one realistic API error event in strict JSON format only.

Generate one JSON object with these fields:
timestamp, errorCode, error, errorCategory, errorLocation, apiName, errorReason,
awsCluster, actionToBeTaken, correlationId, orderId, serviceName, errorStackTrace.

Formatting requirements:
- Use current UTC time in ISO 8601 format for timestamp.
- errorCode, serviceName, errorLocation, and apiName must be uppercase with underscores (e.g. PAYMENT_GATEWAY_TIMEOUT_ERR).
- errorCategory must be one of: API_FAILURE, VALIDATION_ERROR, SYSTEM_ERROR, NETWORK_FAILURE.
- orderId and correlationId must be valid UUID v4 strings.
- errorStackTrace must be a realistic multi-line stack trace with at least 3 nested frames (e.g. DAO -> Manager -> Service).

Variation requirements:
- Maintain at most {{VARIATION_LIMIT}} distinct values across errorCode, serviceName, errorCategory, errorLocation, and apiName.
- After reaching the limit, reuse previously emitted values while still varying combinations and other fields.

Output rules:
- Emit a single JSON object only. No explanations, comments, or code fences."""


def normalize_variation_limit(value: Any) -> int:
    """
    Clamp a variation limit to [1, 10].

    Numbers and numeric strings are truncated to int and clamped.
    Anything else falls back to the default.
    """
    if isinstance(value, bool):
        return DEFAULT_VARIATION_LIMIT

    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return DEFAULT_VARIATION_LIMIT
    elif isinstance(value, (int, float)):
        parsed = float(value)
    else:
        return DEFAULT_VARIATION_LIMIT

    if not math.isfinite(parsed):
        return DEFAULT_VARIATION_LIMIT

    return min(VARIATION_LIMIT_MAX, max(VARIATION_LIMIT_MIN, int(parsed)))


class CamelModel(BaseModel):
    """Base model exposing camelCase field names on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class StreamConfig(BaseModel):
    """Settings read by every tick."""

    interval_ms: int = 5000
    prompt_template: str = DEFAULT_PROMPT_TEMPLATE
    variation_limit: int = DEFAULT_VARIATION_LIMIT

    def render_prompt(self) -> str:
        return self.prompt_template.replace(VARIATION_PLACEHOLDER, str(self.variation_limit))


class ProviderConfig(CamelModel):
    """Stored configuration for one provider type."""

    model_name: Optional[str] = None
    api_url: Optional[str] = None
    api_key: Optional[str] = None


class ProviderSettings(CamelModel):
    """All stored providers plus the one marked active."""

    active_provider: Optional[str] = None
    providers: dict[str, ProviderConfig] = Field(default_factory=dict)


class ConfigUpdate(CamelModel):
    """
    Partial update accepted by the configure operation.

    Omitted fields are left untouched.
    """

    interval: Optional[int] = None
    template: Optional[str] = None
    provider_settings: Optional[ProviderSettings] = None
    app_config: Optional[dict[str, Any]] = None


class ConfigSnapshot(CamelModel):
    """Persisted state returned by getConfig and after a configure."""

    interval: int
    template: str
    variation_limit: int
    is_streaming: bool
    provider_settings: ProviderSettings
    app_config: dict[str, str] = Field(default_factory=dict)


class StartResult(BaseModel):
    started: bool
    effective_interval_ms: int
    message: str


class StopResult(BaseModel):
    stopped: bool
    message: str
