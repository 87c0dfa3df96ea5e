import logging
from typing import Any

import httpx

from msamiati.domain.constants import (
    CATALOG_TABLE,
    REQUEST_TIMEOUT,
    RESPONSIVENESS_TIMEOUT,
    TOMBSTONE_PREFIX,
)
from msamiati.domain.errors import CatalogError
from msamiati.domain.interfaces import RemoteCatalog
from msamiati.domain.models import Mode


class SupabaseCatalogClient(RemoteCatalog):
    """
    Adapter for the cloud word catalog exposed through PostgREST (Supabase).

    Rows are ordered by created_at then id, ascending, which is the same order
    the offline cache uses, so day N is the same slice online and offline.
    Tombstoned rows are excluded server-side; callers still filter defensively.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        table: str = CATALOG_TABLE,
        timeout: float = REQUEST_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.base_url = base_url.rstrip("/")
        self.table = table
        self.timeout = timeout
        self._api_key = api_key
        self._client = client
        self.logger.debug(f"SupabaseCatalogClient initialized with url={self.base_url}")

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/rest/v1/{self.table}"

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["apikey"] = self._api_key
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _filters(self, mode: Mode, category: str | None) -> dict[str, str]:
        params = {
            "mode": f"eq.{mode}",
            "word": f"not.like.{TOMBSTONE_PREFIX}*",
        }
        if category:
            params["category"] = f"eq.{category}"
        return params

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def _request(
        self,
        method: str,
        params: dict[str, Any],
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        client = self._get_client()
        try:
            resp = await client.request(
                method,
                self.endpoint,
                params=params,
                headers={**self._headers(), **(headers or {})},
                timeout=timeout or self.timeout,
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise CatalogError(
                f"Catalog returned HTTP {e.response.status_code} for {method} {self.endpoint}"
            ) from e
        except httpx.HTTPError as e:
            raise CatalogError(f"Catalog request failed: {e}") from e
        return resp

    async def count(self, mode: Mode, category: str | None = None) -> int:
        params = {"select": "id", **self._filters(mode, category)}
        resp = await self._request("HEAD", params, headers={"Prefer": "count=exact"})

        # Content-Range: "0-24/3573" or "*/0"
        content_range = resp.headers.get("content-range", "")
        _, _, total = content_range.partition("/")
        try:
            return int(total)
        except ValueError as e:
            raise CatalogError(f"Catalog sent no usable count: {content_range!r}") from e

    async def fetch_page(
        self, mode: Mode, category: str | None, offset: int, limit: int
    ) -> list[dict[str, Any]]:
        params = {
            "select": "*",
            **self._filters(mode, category),
            "order": "created_at.asc,id.asc",
            "offset": str(offset),
            "limit": str(limit),
        }
        resp = await self._request("GET", params)
        try:
            data = resp.json()
        except ValueError as e:
            raise CatalogError(f"Catalog sent invalid JSON: {e}") from e
        if not isinstance(data, list):
            raise CatalogError(f"Catalog sent {type(data).__name__}, expected a list")
        self.logger.debug(f"Fetched {len(data)} rows for {mode}/{category} at offset {offset}")
        return data

    async def is_responsive(self) -> bool:
        """Check if the catalog answers a trivial query."""
        try:
            await self._request(
                "GET", {"select": "id", "limit": "1"}, timeout=RESPONSIVENESS_TIMEOUT
            )
            return True
        except CatalogError:
            return False

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "SupabaseCatalogClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()
