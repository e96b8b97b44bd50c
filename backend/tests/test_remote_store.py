import asyncio
import json

import httpx
import pytest

from offline_pos.services.remote_store import HttpRemoteStore, RemoteStore, RemoteStoreError

pytestmark = pytest.mark.sync


class RecordingHandler:
    """httpx.MockTransport handler that records requests and replays canned responses."""

    def __init__(self, responses=None):
        self.requests = []
        self.responses = responses or {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.responses:
            return httpx.Response(204)
        status, body = self.responses[key]
        return httpx.Response(status, json=body)


def _store(handler, token=None):
    return HttpRemoteStore(
        "https://remote.test/api",
        token=token,
        transport=httpx.MockTransport(handler),
    )


def test_get_all_accepts_plain_list():
    handler = RecordingHandler({("GET", "/api/products"): (200, [{"id": "P1"}, {"id": "P2"}])})

    docs = asyncio.run(_store(handler).get_all("products"))

    assert [d["id"] for d in docs] == ["P1", "P2"]


def test_get_all_accepts_documents_envelope():
    handler = RecordingHandler({("GET", "/api/sales"): (200, {"documents": [{"id": "S1"}]})})

    docs = asyncio.run(_store(handler).get_all("sales"))

    assert docs == [{"id": "S1"}]


def test_get_all_rejects_unexpected_shape():
    handler = RecordingHandler({("GET", "/api/products"): (200, {"items": []})})

    with pytest.raises(RemoteStoreError):
        asyncio.run(_store(handler).get_all("products"))


def test_merge_set_uses_patch_with_bearer_token():
    handler = RecordingHandler()

    asyncio.run(_store(handler, token="secret").set("inventory_changes", "S1:0", {"delta": -2}))

    request = handler.requests[0]
    assert request.method == "PATCH"
    assert request.url.path == "/api/inventory_changes/S1:0"
    assert request.headers["Authorization"] == "Bearer secret"
    assert json.loads(request.content) == {"delta": -2}


def test_overwrite_set_uses_put():
    handler = RecordingHandler()

    asyncio.run(_store(handler).set("products", "P1", {"id": "P1"}, merge=False))

    assert handler.requests[0].method == "PUT"
    assert "Authorization" not in handler.requests[0].headers


def test_http_error_status_raises():
    handler = RecordingHandler({("PATCH", "/api/products/P1"): (503, {"error": "down"})})

    with pytest.raises(RemoteStoreError) as excinfo:
        asyncio.run(_store(handler).set("products", "P1", {"id": "P1"}))

    assert excinfo.value.status_code == 503


def test_transport_error_raises_remote_store_error():
    def handler(request):
        raise httpx.ConnectError("no route to host", request=request)

    with pytest.raises(RemoteStoreError):
        asyncio.run(_store(handler).get_all("products"))


def test_ping():
    def unreachable(request):
        raise httpx.ConnectError("no route to host", request=request)

    assert asyncio.run(_store(RecordingHandler({("GET", "/api/"): (404, {})})).ping()) is True
    assert asyncio.run(_store(RecordingHandler({("GET", "/api/"): (502, {})})).ping()) is False
    assert asyncio.run(_store(unreachable).ping()) is False


def test_each_loop_owner_closes_its_client():
    handler = RecordingHandler({("GET", "/api/products"): (200, [])})
    store = _store(handler)
    open_during = []

    async def fetch_then_close():
        try:
            await store.get_all("products")
            open_during.append(store.open_clients)
        finally:
            await store.aclose()

    asyncio.run(fetch_then_close())
    asyncio.run(fetch_then_close())

    assert open_during == [1, 1]
    assert store.open_clients == 0
    assert len(handler.requests) == 2


def test_aclose_without_client_is_harmless():
    asyncio.run(_store(RecordingHandler()).aclose())


def test_incomplete_remote_store_cannot_be_instantiated():
    class ReadOnlyStore(RemoteStore):
        async def get_all(self, collection):
            return []

    with pytest.raises(TypeError):
        ReadOnlyStore()
