# Overview: Remote document store contract and its HTTP realisation (httpx).

from __future__ import annotations

import asyncio
import logging
import weakref
from abc import ABC, abstractmethod
from typing import Any, Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

REMOTE_PRODUCTS = "products"
REMOTE_SALES = "sales"
REMOTE_INVENTORY_CHANGES = "inventory_changes"


class RemoteStoreError(Exception):
    """Transport or protocol failure talking to the remote store."""
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteStore(ABC):
    """
    Document-oriented store keyed by entity id.

    The sync engine's only network dependency. Whoever owns the event loop
    calls aclose() before the loop ends.
    """

    @abstractmethod
    async def get_all(self, collection: str) -> list[dict]:
        ...

    @abstractmethod
    async def set(self, collection: str, doc_id: str, document: dict, merge: bool = True) -> None:
        ...

    async def ping(self) -> bool:
        """Reachability probe; never raises."""
        return True

    async def aclose(self) -> None:
        """Release resources bound to the running event loop."""
        return None


class HttpRemoteStore(RemoteStore):
    """
    JSON document API:

    - GET   {base}/{collection}        -> [doc, ...] or {"documents": [doc, ...]}
    - PATCH {base}/{collection}/{id}   -> merge fields into the document
    - PUT   {base}/{collection}/{id}   -> replace the document
    - GET   {base}/                    -> any 2xx/4xx answer means reachable

    One AsyncClient per event loop (connection pools are loop-bound);
    aclose() closes the client of the running loop.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self._clients: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, httpx.AsyncClient] = (
            weakref.WeakKeyDictionary()
        )

    @property
    def open_clients(self) -> int:
        return sum(1 for client in list(self._clients.values()) if not client.is_closed)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        loop = asyncio.get_running_loop()
        client = self._clients.get(loop)
        if client is None or client.is_closed:
            for other_loop, other in list(self._clients.items()):
                if other_loop.is_closed() and not other.is_closed:
                    logger.warning("Remote store client outlived its event loop without aclose()")
            client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self._headers(),
                timeout=self._timeout,
                transport=self._transport,
            )
            self._clients[loop] = client
        return client

    def _doc_path(self, collection: str, doc_id: str) -> str:
        return f"/{quote(collection, safe='')}/{quote(doc_id, safe='')}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        client = self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteStoreError(f"{method} {path} failed: {exc}") from exc
        if response.is_error:
            raise RemoteStoreError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def get_all(self, collection: str) -> list[dict]:
        response = await self._request("GET", f"/{quote(collection, safe='')}")
        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteStoreError(f"{collection}: response is not JSON") from exc

        if isinstance(body, dict):
            body = body.get("documents")
        if not isinstance(body, list):
            raise RemoteStoreError(f"{collection}: expected a list of documents")
        return body

    async def set(self, collection: str, doc_id: str, document: dict, merge: bool = True) -> None:
        method = "PATCH" if merge else "PUT"
        await self._request(method, self._doc_path(collection, doc_id), json=document)

    async def ping(self) -> bool:
        client = self._get_client()
        try:
            response = await client.get("/")
        except httpx.HTTPError as exc:
            logger.debug("Remote store unreachable: %s", exc)
            return False
        return response.status_code < 500

    async def aclose(self) -> None:
        client = self._clients.pop(asyncio.get_running_loop(), None)
        if client is not None:
            await client.aclose()
