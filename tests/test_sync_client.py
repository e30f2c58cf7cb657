"""AnchorSyncClient over an httpx.MockTransport."""

import json

import httpx
import pytest

from anchor_helpers import make_record
from chore_anchors.errors import StoreRejected, StoreUnavailable
from chore_anchors.services.sync_client import AnchorSyncClient


def _client(handler) -> AnchorSyncClient:
    return AnchorSyncClient("http://sync.local/", "token-123", transport=httpx.MockTransport(handler))


class TestAnchorSyncClient:

    async def test_fetch_anchors(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["path"] = request.url.path
            return httpx.Response(200, json=[make_record("a1").to_json_dict()])

        client = _client(handler)
        records = await client.fetch_anchors()
        await client.aclose()

        assert [r.id for r in records] == ["a1"]
        assert seen == {"auth": "Bearer token-123", "path": "/anchors"}

    async def test_replace_anchors_posts_camel_case_array(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True})

        client = _client(handler)
        await client.replace_anchors([make_record("a1"), make_record("a2")])
        await client.aclose()

        assert [item["id"] for item in bodies[0]] == ["a1", "a2"]
        assert bodies[0][0]["qrEndCode"] == "a1-end"

    @pytest.mark.parametrize("status", [400, 401, 500])
    async def test_error_status_is_rejection(self, status):
        client = _client(lambda request: httpx.Response(status, json={"error": "nope"}))
        with pytest.raises(StoreRejected):
            await client.fetch_anchors()
        await client.aclose()

    async def test_connection_failure_is_unavailable(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        with pytest.raises(StoreUnavailable):
            await client.replace_anchors([])
        await client.aclose()

    async def test_health(self):
        client = _client(lambda request: httpx.Response(200, json={"status": "ok"}))
        assert await client.health() is True
        await client.aclose()

    async def test_health_when_down(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        client = _client(handler)
        assert await client.health() is False
        await client.aclose()


class TestUnusableResponses:

    @pytest.mark.parametrize("response", [
        httpx.Response(200, json=[{"id": "x", "name": "n"}]),
        httpx.Response(200, text="<html>proxy</html>"),
        httpx.Response(200, json={"anchors": []}),
    ])
    async def test_bad_body_is_rejection(self, response):
        client = _client(lambda request: response)
        with pytest.raises(StoreRejected):
            await client.fetch_anchors()
        await client.aclose()
