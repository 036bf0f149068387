"""
Pocketbase Client.

Async wrapper over the Pocketbase REST API: collections, records and the
transactional batch endpoint. Schema and batch calls run as superuser.
"""
import logging
from typing import Any, Optional

import httpx

from error_streamer.config import settings
from error_streamer.errors import PersistenceError

logger = logging.getLogger(__name__)

SUPERUSER_AUTH_PATH = "/api/collections/_superusers/auth-with-password"


class PocketbaseError(PersistenceError):
    """Pocketbase rejected a call or could not be reached."""


def records_path(collection: str, record_id: Optional[str] = None) -> str:
    path = f"/api/collections/{collection}/records"
    return f"{path}/{record_id}" if record_id else path


def _error_message(response: httpx.Response) -> str:
    try:
        message = response.json().get("message")
    except (ValueError, AttributeError):
        message = None
    return message or response.text or response.reason_phrase or "Unknown error"


class PocketbaseService:
    """
    Pocketbase client sharing one connection pool.

    Superuser calls fetch a token on first use and fetch a fresh one once
    if Pocketbase answers 401.
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.base_url = (base_url or settings.pocketbase_url).rstrip("/")
        self.timeout = timeout or settings.store_timeout_seconds
        self._http: Optional[httpx.AsyncClient] = None
        self._token: Optional[str] = None

    def _client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._http

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def _superuser_token(self, refresh: bool = False) -> Optional[str]:
        if self._token and not refresh:
            return self._token
        self._token = None

        identity = settings.pocketbase_admin_email
        password = settings.pocketbase_admin_password
        if not (identity and password):
            logger.debug("Pocketbase superuser credentials not set, calling anonymously")
            return None

        try:
            response = await self._client().post(
                SUPERUSER_AUTH_PATH, json={"identity": identity, "password": password}
            )
        except httpx.HTTPError as e:
            logger.warning("Pocketbase superuser auth unreachable: %s", e)
            return None

        if response.status_code != 200:
            logger.warning("Pocketbase superuser auth rejected (%d)", response.status_code)
            return None

        self._token = response.json().get("token")
        logger.info("Authenticated to Pocketbase as superuser")
        return self._token

    async def _send(
        self,
        method: str,
        path: str,
        body: Any,
        query: Optional[dict[str, Any]],
        token: Optional[str],
    ) -> httpx.Response:
        headers = {"Authorization": token} if token else None
        try:
            return await self._client().request(
                method, path, json=body, params=query, headers=headers
            )
        except httpx.RequestError as e:
            raise PocketbaseError(f"Connection error: {e}")

    async def _request(
        self,
        method: str,
        path: str,
        body: Any = None,
        query: Optional[dict[str, Any]] = None,
        superuser: bool = False,
    ) -> Any:
        """
        Send one call and decode the JSON reply.

        Raises:
            PocketbaseError: transport failure or any 4xx/5xx answer
        """
        token = await self._superuser_token() if superuser else None
        response = await self._send(method, path, body, query, token)

        if response.status_code == 401 and token:
            token = await self._superuser_token(refresh=True)
            response = await self._send(method, path, body, query, token)

        if response.is_error:
            raise PocketbaseError(_error_message(response), response.status_code)

        return response.json() if response.content else None

    async def health_check(self) -> dict:
        return await self._request("GET", "/api/health")

    async def enable_batch(self, max_requests: int = 100) -> dict:
        """Turn on the transactional batch API."""
        return await self._request(
            "PATCH",
            "/api/settings",
            body={"batch": {"enabled": True, "maxRequests": max_requests}},
            superuser=True,
        )

    # ==================== Collections ====================

    async def list_collections(self) -> list[dict]:
        page = await self._request("GET", "/api/collections", query={"perPage": 200}, superuser=True)
        return (page or {}).get("items", [])

    async def create_collection(
        self,
        name: str,
        fields: list[dict],
        indexes: Optional[list[str]] = None,
    ) -> dict:
        """Create a base collection whose records are open to every client."""
        open_rules = dict.fromkeys(
            ("listRule", "viewRule", "createRule", "updateRule", "deleteRule"), ""
        )
        return await self._request(
            "POST",
            "/api/collections",
            body={"name": name, "type": "base", "fields": fields, "indexes": indexes or [], **open_rules},
            superuser=True,
        )

    # ==================== Records ====================

    async def list_records(
        self,
        collection: str,
        filter: Optional[str] = None,
        sort: Optional[str] = None,
        page: int = 1,
        per_page: int = 50,
        fields: Optional[str] = None,
    ) -> dict:
        """One page of records: {"page", "perPage", "totalItems", "items"}."""
        query = {"page": page, "perPage": per_page, "filter": filter, "sort": sort, "fields": fields}
        return await self._request(
            "GET",
            records_path(collection),
            query={k: v for k, v in query.items() if v is not None},
        )

    async def create_record(self, collection: str, data: dict) -> dict:
        return await self._request("POST", records_path(collection), body=data)

    async def update_record(self, collection: str, record_id: str, data: dict) -> dict:
        return await self._request("PATCH", records_path(collection, record_id), body=data)

    async def batch(self, requests: list[dict]) -> list[dict]:
        """
        Run several record operations in one transaction.

        Each request is {"method": ..., "url": ..., "body": ...}.
        Pocketbase rolls back every operation if any of them fails.
        """
        if not requests:
            return []
        result = await self._request(
            "POST", "/api/batch", body={"requests": requests}, superuser=True
        )
        return result or []


pocketbase = PocketbaseService()
