"""
Search index client.

Writes task documents to Elasticsearch through its REST API using httpx.
Every write is an index-by-id, so repeating it replaces the same document.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol

import httpx
from loguru import logger

from .errors import IndexWriteError

DEFAULT_INDEX = "task-idx"


class IndexClient(Protocol):
    """Index-or-replace a document by id; raises on failure."""

    async def upsert(self, doc_id: int, document: dict[str, Any]) -> None: ...


class ElasticsearchIndexClient:
    """Async Elasticsearch client bound to a single index.

    Example:
        async with ElasticsearchIndexClient("http://127.0.0.1:9200") as es:
            await es.upsert(42, {"id": 42, "title": "buy milk", ...})
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:9200",
        index: str = DEFAULT_INDEX,
        *,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.index = index
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
            logger.info(f"Elasticsearch client started: {self.base_url} index={self.index}")

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ElasticsearchIndexClient":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    def _path(self, doc_id: int) -> str:
        return f"/{self.index}/_doc/{doc_id}"

    async def upsert(self, doc_id: int, document: dict[str, Any]) -> None:
        if self._client is None:
            await self.start()
        try:
            response = await self._client.put(self._path(doc_id), json=document)
        except httpx.HTTPError as exc:
            raise IndexWriteError(f"{type(exc).__name__}: {exc}") from exc

        if response.status_code >= 300:
            raise IndexWriteError(
                f"index {self.index} rejected doc {doc_id}: "
                f"HTTP {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )
        logger.debug(f"Indexed doc {doc_id} into {self.index} ({response.status_code})")

    async def ping(self) -> bool:
        if self._client is None:
            await self.start()
        try:
            response = await self._client.get("/")
        except httpx.HTTPError:
            return False
        return response.status_code == 200
