"""Tests for services/api_client.py — REST client with retry."""

from __future__ import annotations

import json

import httpx
import pytest

from errors.exceptions import ApiClientError
from services.api_client import ApiClient, get_api_client


class Recorder:
    """MockTransport handler replaying a list of responses (or exceptions)."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


async def _client(settings, recorder) -> ApiClient:
    client = ApiClient(settings=settings, transport=httpx.MockTransport(recorder))
    await client.start()
    return client


# ---------------------------------------------------------------------------
# Construction / lifecycle
# ---------------------------------------------------------------------------


def test_base_url_constructed(settings):
    assert ApiClient(settings=settings)._base_url == "http://pipeline.test/api/v1"


def test_auth_headers_empty_by_default(settings):
    assert ApiClient(settings=settings)._auth_headers() == {}


@pytest.mark.asyncio
async def test_not_started_raises(settings):
    with pytest.raises(RuntimeError, match="not started"):
        await ApiClient(settings=settings).get("/x")


@pytest.mark.asyncio
async def test_start_is_idempotent_and_close_resets(settings):
    client = ApiClient(settings=settings, transport=httpx.MockTransport(Recorder()))
    await client.start()
    http = client._http
    await client.start()
    assert client._http is http
    await client.close()
    assert client._http is None


def test_singleton():
    assert get_api_client() is get_api_client()


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_returns_json(settings):
    recorder = Recorder(httpx.Response(200, json=[{"sessionId": "s1"}]))
    client = await _client(settings, recorder)

    data = await client.get("/conversations", params={"userId": "7"})

    assert data == [{"sessionId": "s1"}]
    assert recorder.requests[0].url.path == "/api/v1/conversations"
    assert recorder.requests[0].url.params["userId"] == "7"
    await client.close()


@pytest.mark.asyncio
async def test_post_sends_json_body(settings):
    recorder = Recorder(httpx.Response(200, json={"ok": True}))
    client = await _client(settings, recorder)

    await client.post("/auth/login", json_body={"login": "alice"})

    assert recorder.requests[0].method == "POST"
    assert json.loads(recorder.requests[0].read()) == {"login": "alice"}
    await client.close()


@pytest.mark.asyncio
async def test_empty_body_returns_empty_dict(settings):
    client = await _client(settings, Recorder(httpx.Response(204)))
    assert await client.delete("/conversations/s1") == {}
    await client.close()


@pytest.mark.asyncio
async def test_bearer_token_hot_swap(settings):
    recorder = Recorder(httpx.Response(200, json={}), httpx.Response(200, json={}))
    client = await _client(settings, recorder)

    client.set_access_token("tok")
    await client.get("/a")
    client.set_access_token(None)
    await client.get("/b")

    assert recorder.requests[0].headers["authorization"] == "Bearer tok"
    assert "authorization" not in recorder.requests[1].headers
    await client.close()


# ---------------------------------------------------------------------------
# Retry
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_4xx_not_retried(settings):
    recorder = Recorder(httpx.Response(404, text="Conversation introuvable"))
    client = await _client(settings, recorder)

    with pytest.raises(ApiClientError) as exc_info:
        await client.get("/conversations/missing")

    assert exc_info.value.status_code == 404
    assert "introuvable" in exc_info.value.detail
    assert len(recorder.requests) == 1
    await client.close()


@pytest.mark.asyncio
async def test_5xx_retried_then_succeeds(settings):
    recorder = Recorder(httpx.Response(502), httpx.Response(200, json={"ok": True}))
    client = await _client(settings, recorder)

    assert await client.get("/tokens/user/7") == {"ok": True}
    assert len(recorder.requests) == 2
    await client.close()


@pytest.mark.asyncio
async def test_5xx_exhausts_retries(settings):
    recorder = Recorder(*(httpx.Response(500, text="err") for _ in range(3)))
    client = await _client(settings, recorder)

    with pytest.raises(ApiClientError) as exc_info:
        await client.get("/x")

    assert exc_info.value.status_code == 500
    assert len(recorder.requests) == settings.max_retries
    await client.close()


@pytest.mark.asyncio
async def test_network_error_retried_then_raised(settings):
    recorder = Recorder(*(httpx.ConnectError("refused") for _ in range(3)))
    client = await _client(settings, recorder)

    with pytest.raises(httpx.ConnectError):
        await client.get("/x")

    assert len(recorder.requests) == 3
    await client.close()
