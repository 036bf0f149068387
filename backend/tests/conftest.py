"""
Pytest configuration for backend tests.

Adds the backend directory to Python path so imports like
'from error_streamer.xxx import ...' work without installing, and
provides in-memory stand-ins for Pocketbase, subscribers and the
generation backend.
"""
import copy
import json
import re
import sys
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

import pytest

# Add backend directory to path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from error_streamer.config import Settings  # noqa: E402
from error_streamer.services.pocketbase import PocketbaseError  # noqa: E402

_FILTER_RE = re.compile(r'^(\w+)="([^"]*)"$')
_RECORD_URL_RE = re.compile(r"^/api/collections/(\w+)/records(?:/(\w+))?$")

# Pocketbase clamps perPage to this
MAX_PER_PAGE = 1000


class FakePocketbase:
    """
    In-memory Pocketbase with the subset of the REST API the app uses.

    batch() is all-or-nothing, like the real transactional endpoint.
    Set fail_collections to make every call touching a collection fail.
    """

    def __init__(self):
        self.collections: dict[str, dict[str, dict]] = {}
        self.created_collections: list[str] = []
        self.fail_collections: set[str] = set()
        self.fail_batch = False
        self.batch_calls: list[list[dict]] = []
        self._seq = 0
        self._epoch = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def _check(self, collection: str) -> None:
        if collection in self.fail_collections:
            raise PocketbaseError("Connection error: store unavailable")

    def _next_id(self) -> str:
        self._seq += 1
        return f"rec{self._seq:012d}"

    def records(self, collection: str) -> list[dict]:
        return list(self.collections.get(collection, {}).values())

    async def health_check(self) -> dict:
        return {"message": "API is healthy."}

    async def enable_batch(self, max_requests: int = 100) -> dict:
        return {"batch": {"enabled": True}}

    async def list_collections(self) -> list[dict]:
        return [{"name": name} for name in self.collections]

    async def create_collection(self, name: str, fields: list[dict], indexes=None) -> dict:
        self.collections.setdefault(name, {})
        self.created_collections.append(name)
        return {"name": name}

    async def list_records(
        self,
        collection: str,
        filter: Optional[str] = None,
        sort: Optional[str] = None,
        page: int = 1,
        per_page: int = 50,
        fields: Optional[str] = None,
    ) -> dict:
        self._check(collection)
        items = [copy.deepcopy(r) for r in self.records(collection)]

        if filter:
            match = _FILTER_RE.match(filter)
            assert match, f"unsupported filter: {filter}"
            key, value = match.groups()
            items = [r for r in items if str(r.get(key)) == value]

        if sort:
            key = sort.lstrip("-")
            items.sort(key=lambda r: str(r.get(key, "")), reverse=sort.startswith("-"))

        per_page = min(per_page, MAX_PER_PAGE)
        total = len(items)
        start = (page - 1) * per_page
        return {
            "page": page,
            "perPage": per_page,
            "totalItems": total,
            "items": items[start:start + per_page],
        }

    async def create_record(self, collection: str, data: dict) -> dict:
        self._check(collection)
        record_id = self._next_id()
        created = (self._epoch + timedelta(seconds=self._seq)).isoformat()
        record = {"id": record_id, "created": created, **copy.deepcopy(data)}
        self.collections.setdefault(collection, {})[record_id] = record
        return copy.deepcopy(record)

    async def update_record(self, collection: str, record_id: str, data: dict) -> dict:
        self._check(collection)
        record = self.collections.get(collection, {}).get(record_id)
        if record is None:
            raise PocketbaseError("The requested resource wasn't found.", 404)
        record.update(copy.deepcopy(data))
        return copy.deepcopy(record)

    async def _delete_record(self, collection: str, record_id: str) -> None:
        self._check(collection)
        if self.collections.get(collection, {}).pop(record_id, None) is None:
            raise PocketbaseError("The requested resource wasn't found.", 404)

    async def batch(self, requests: list[dict]) -> list[dict]:
        self.batch_calls.append(copy.deepcopy(requests))
        if self.fail_batch:
            raise PocketbaseError("Failed to process the batch request.", 400)

        snapshot = (copy.deepcopy(self.collections), self._seq)
        results = []
        try:
            for request in requests:
                match = _RECORD_URL_RE.match(request["url"])
                assert match, f"unsupported batch url: {request['url']}"
                collection, record_id = match.groups()
                method = request["method"]
                body = request.get("body") or {}
                if method == "POST":
                    results.append({"status": 200, "body": await self.create_record(collection, body)})
                elif method == "PATCH":
                    results.append({"status": 200, "body": await self.update_record(collection, record_id, body)})
                elif method == "DELETE":
                    await self._delete_record(collection, record_id)
                    results.append({"status": 204, "body": None})
                else:
                    raise AssertionError(f"unsupported method {method}")
        except PocketbaseError:
            self.collections, self._seq = snapshot
            raise
        return results


class FakeSubscriber:
    """Collects messages; optionally fails every send."""

    def __init__(self, fail: bool = False):
        self.messages: list[dict] = []
        self.fail = fail

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise RuntimeError("connection closed")
        self.messages.append(data)

    def of_type(self, msg_type: str) -> list[dict]:
        return [m for m in self.messages if m.get("type") == msg_type]


def make_event_payload(**overrides: Any) -> dict:
    """A valid backend event payload."""
    payload = {
        "timestamp": "2025-06-01T12:00:00Z",
        "errorCode": "PAYMENT_GATEWAY_TIMEOUT_ERR",
        "error": "Gateway timed out",
        "errorCategory": "API_FAILURE",
        "errorLocation": "PAYMENT_SERVICE",
        "apiName": "PAYMENTS_API",
        "errorReason": "Upstream did not respond in 30s",
        "awsCluster": "prod-us-east-1",
        "actionToBeTaken": "Retry with backoff",
        "correlationId": str(uuid.uuid4()),
        "orderId": str(uuid.uuid4()),
        "serviceName": "CHECKOUT_SERVICE",
        "errorStackTrace": "at PaymentDao.charge\nat PaymentManager.process\nat CheckoutService.submit",
    }
    payload.update(overrides)
    return payload


class StubGenerator:
    """
    Generation client stand-in.

    Returns queued responses in order (an Exception instance is raised),
    then keeps returning a fresh valid payload.
    """

    def __init__(self, responses: Optional[list[Any]] = None):
        self.responses = list(responses or [])
        self.calls: list[tuple[Any, str]] = []

    async def generate(self, provider, prompt: str) -> str:
        self.calls.append((provider, prompt))
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return json.dumps(make_event_payload())


@pytest.fixture
def fake_pocketbase() -> FakePocketbase:
    return FakePocketbase()


@pytest.fixture
def env_settings() -> Settings:
    """Settings with a Gemini key and nothing read from .env."""
    return Settings(
        _env_file=None,
        gemini_api_key="env-gemini-key",
        ollama_host=None,
        ollama_api_key=None,
    )


@pytest.fixture
def bare_settings() -> Settings:
    """Settings with no backend credentials."""
    return Settings(
        _env_file=None,
        gemini_api_key=None,
        ollama_host=None,
        ollama_api_key=None,
    )
