"""
Generation Client.

Calls the resolved text-generation backend and returns the raw text it
produced. Parsing is left to the event factory.
"""
import logging
from typing import Any, Optional

import httpx

from error_streamer.config import settings
from error_streamer.errors import BackendError, BackendErrorKind
from error_streamer.services.providers import ResolvedProvider

logger = logging.getLogger(__name__)

OLLAMA_SYSTEM_PROMPT = "You are a streaming data generator that must respond with valid JSON only."


class GenerationClient:
    """Async client for the supported generation backends (Gemini, Ollama)."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout or settings.generation_timeout_seconds
        self._transport = transport

    async def generate(self, provider: ResolvedProvider, prompt: str) -> str:
        """
        Run one generation call.

        Raises:
            BackendError: transport, HTTP or empty-response failure
        """
        if provider.type == "gemini":
            return await self._call_gemini(provider, prompt)
        if provider.type == "ollama":
            return await self._call_ollama(provider, prompt)
        raise BackendError(f'Unsupported AI provider "{provider.type}".', provider=provider.type)

    async def _post(
        self,
        provider: ResolvedProvider,
        url: str,
        body: dict[str, Any],
        headers: Optional[dict[str, str]] = None,
        params: Optional[dict[str, str]] = None,
    ) -> Any:
        label = provider.type.capitalize()

        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            try:
                response = await client.post(url, json=body, headers=headers, params=params)
            except httpx.TimeoutException:
                raise BackendError(
                    f"{label} API request timed out after {self.timeout:g}s",
                    provider=provider.type,
                    kind=BackendErrorKind.CONNECTION,
                )
            except httpx.RequestError as e:
                raise BackendError(
                    f"{label} API connection error: {e}",
                    provider=provider.type,
                    kind=BackendErrorKind.CONNECTION,
                )

        if response.status_code >= 400:
            logger.warning("%s API error: %s %s", label, response.status_code, response.text[:500])
            raise self._http_error(provider, response)

        try:
            return response.json()
        except ValueError:
            raise BackendError(
                f"{label} API returned a non-JSON response",
                provider=provider.type,
                status_code=response.status_code,
                kind=BackendErrorKind.EMPTY,
            )

    @staticmethod
    def _http_error(provider: ResolvedProvider, response: httpx.Response) -> BackendError:
        label = provider.type.capitalize()
        status = response.status_code

        if status == 429:
            return BackendError(
                "Rate limit exceeded. Please try again later.",
                provider=provider.type,
                status_code=status,
                kind=BackendErrorKind.RATE_LIMIT,
            )
        if status in (401, 403):
            return BackendError(
                f"API key invalid or quota exceeded. Please check your {label} API key.",
                provider=provider.type,
                status_code=status,
                kind=BackendErrorKind.AUTH,
            )
        return BackendError(
            f"{label} API error: {status} - {response.text[:200]}",
            provider=provider.type,
            status_code=status,
        )

    async def _call_gemini(self, provider: ResolvedProvider, prompt: str) -> str:
        url = f"{provider.api_url}/v1beta/models/{provider.model_name}:generateContent"
        data = await self._post(
            provider,
            url,
            body={"contents": [{"parts": [{"text": prompt}]}]},
            params={"key": provider.api_key or ""},
        )

        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            text = None

        if not text:
            logger.warning("No content in Gemini response: %s", str(data)[:500])
            raise BackendError(
                "No content generated from Gemini",
                provider=provider.type,
                kind=BackendErrorKind.EMPTY,
            )
        return text

    async def _call_ollama(self, provider: ResolvedProvider, prompt: str) -> str:
        headers = {}
        if provider.api_key:
            headers["Authorization"] = f"Bearer {provider.api_key}"

        data = await self._post(
            provider,
            f"{provider.api_url}/api/chat",
            body={
                "model": provider.model_name,
                "stream": False,
                "messages": [
                    {"role": "system", "content": OLLAMA_SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
            },
            headers=headers,
        )

        if isinstance(data, dict) and data.get("error"):
            raise BackendError(f"Ollama API error: {data['error']}", provider=provider.type)

        content = None
        if isinstance(data, dict):
            message = data.get("message") or {}
            content = message.get("content")
            if not content and data.get("messages"):
                content = data["messages"][0].get("content")
            if not content and isinstance(data.get("output"), list):
                content = "".join(data["output"])

        if not content:
            logger.warning("Unexpected Ollama response: %s", str(data)[:500])
            raise BackendError(
                "No content generated from Ollama",
                provider=provider.type,
                kind=BackendErrorKind.EMPTY,
            )
        return content
