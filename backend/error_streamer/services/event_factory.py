"""
Event Factory.

Turns raw backend text into a validated EventRecord.
"""
import json
import logging
import re

from pydantic import ValidationError

from error_streamer.errors import PayloadError
from error_streamer.models.events import EventRecord

logger = logging.getLogger(__name__)

_OPENING_FENCE = re.compile(r"^```[a-zA-Z]*\s*")
_CLOSING_FENCE = re.compile(r"\s*```$")


def strip_code_fences(text: str) -> str:
    """Remove a ```json ... ``` (or bare ```) wrapper if present."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = _OPENING_FENCE.sub("", cleaned, count=1)
        cleaned = _CLOSING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def build_event(raw_text: str, provider: str = "backend") -> EventRecord:
    """
    Parse backend output into an EventRecord.

    Raises:
        PayloadError: text is not JSON or does not match the record schema
    """
    cleaned = strip_code_fences(raw_text)
    label = provider.capitalize()

    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.warning("JSON parse error from %s: %s", provider, e)
        logger.debug("Attempted to parse: %s", cleaned)
        raise PayloadError(f"Invalid JSON generated by {label}", raw_text=cleaned)

    if not isinstance(payload, dict):
        logger.warning("%s returned JSON %s instead of an object", provider, type(payload).__name__)
        raise PayloadError(f"Invalid JSON generated by {label}", raw_text=cleaned)

    try:
        return EventRecord.model_validate(payload)
    except ValidationError as e:
        logger.warning(
            "Event from %s failed validation (%d errors): %s",
            provider,
            e.error_count(),
            e.errors(include_url=False, include_input=False),
        )
        logger.debug("Rejected payload: %s", cleaned)
        raise PayloadError(f"Invalid JSON generated by {label}", raw_text=cleaned)
