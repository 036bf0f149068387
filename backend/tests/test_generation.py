"""
Tests for GenerationClient against mocked HTTP backends.
"""
import httpx
import pytest

from error_streamer.errors import BackendError, BackendErrorKind
from error_streamer.services.generation import GenerationClient
from error_streamer.services.providers import ResolvedProvider

GEMINI = ResolvedProvider(
    type="gemini",
    model_name="gemini-pro",
    api_url="https://gemini.test",
    api_key="secret",
    source="provider_settings",
)
OLLAMA = ResolvedProvider(
    type="ollama",
    model_name="llama3.1",
    api_url="http://ollama.test:11434",
    api_key=None,
    source="app_config",
)


def client_for(handler) -> GenerationClient:
    return GenerationClient(timeout=5, transport=httpx.MockTransport(handler))


def gemini_body(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


class TestGemini:
    """Tests for the Gemini backend."""

    @pytest.mark.asyncio
    async def test_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = request.url
            return httpx.Response(200, json=gemini_body('{"ok": true}'))

        text = await client_for(handler).generate(GEMINI, "make an event")

        assert text == '{"ok": true}'
        assert seen["url"].path == "/v1beta/models/gemini-pro:generateContent"
        assert seen["url"].params["key"] == "secret"

    @pytest.mark.parametrize(
        "status, kind, message",
        [
            (429, BackendErrorKind.RATE_LIMIT, "Rate limit exceeded. Please try again later."),
            (401, BackendErrorKind.AUTH, "API key invalid or quota exceeded. Please check your Gemini API key."),
            (403, BackendErrorKind.AUTH, "API key invalid or quota exceeded. Please check your Gemini API key."),
        ],
    )
    @pytest.mark.asyncio
    async def test_mapped_http_errors(self, status, kind, message):
        client = client_for(lambda request: httpx.Response(status, text="nope"))

        with pytest.raises(BackendError) as exc_info:
            await client.generate(GEMINI, "prompt")

        assert exc_info.value.kind == kind
        assert exc_info.value.status_code == status
        assert exc_info.value.message == message

    @pytest.mark.asyncio
    async def test_other_http_error(self):
        client = client_for(lambda request: httpx.Response(500, text="internal boom"))

        with pytest.raises(BackendError) as exc_info:
            await client.generate(GEMINI, "prompt")

        assert exc_info.value.kind == BackendErrorKind.HTTP
        assert exc_info.value.message == "Gemini API error: 500 - internal boom"

    @pytest.mark.asyncio
    async def test_empty_candidates(self):
        client = client_for(lambda request: httpx.Response(200, json={"candidates": []}))

        with pytest.raises(BackendError) as exc_info:
            await client.generate(GEMINI, "prompt")

        assert exc_info.value.kind == BackendErrorKind.EMPTY
        assert exc_info.value.message == "No content generated from Gemini"

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(BackendError) as exc_info:
            await client_for(handler).generate(GEMINI, "prompt")

        assert exc_info.value.kind == BackendErrorKind.CONNECTION


class TestOllama:
    """Tests for the Ollama backend."""

    @pytest.mark.asyncio
    async def test_chat_message_content(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["request"] = request
            return httpx.Response(200, json={"message": {"role": "assistant", "content": "{}"}})

        text = await client_for(handler).generate(OLLAMA, "prompt")

        assert text == "{}"
        assert seen["request"].url.path == "/api/chat"
        assert "authorization" not in seen["request"].headers

    @pytest.mark.asyncio
    async def test_bearer_token_when_key_configured(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("authorization")
            return httpx.Response(200, json={"messages": [{"content": "{}"}]})

        provider = ResolvedProvider(
            type="ollama",
            model_name="llama3.1",
            api_url="https://ollama.cloud.test",
            api_key="tok",
            source="provider_settings",
        )
        text = await client_for(handler).generate(provider, "prompt")

        assert text == "{}"
        assert seen["auth"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_error_field(self):
        client = client_for(lambda request: httpx.Response(200, json={"error": "model not found"}))

        with pytest.raises(BackendError, match="model not found"):
            await client.generate(OLLAMA, "prompt")

    @pytest.mark.asyncio
    async def test_no_content(self):
        client = client_for(lambda request: httpx.Response(200, json={"message": {}}))

        with pytest.raises(BackendError) as exc_info:
            await client.generate(OLLAMA, "prompt")

        assert exc_info.value.message == "No content generated from Ollama"
