"""Shared pytest fixtures for the chat client tests.

Provides:
- ``settings``: Settings pointing at a fake pipeline host, no retry delay
- ``encoder``: SSE encoder producing the pipeline's wire format
- ``sse_transport``: builds an ``httpx.MockTransport`` replaying SSE bodies
- ``auth``: AuthSession with an authenticated user (id 7)
"""

from __future__ import annotations

from typing import Callable

import httpx
import pytest

from config.settings import Settings
from models.auth import User
from services.auth import AuthSession
from services.sse import StreamEventEncoder

BASE_URL = "http://pipeline.test"
STREAM_URL = f"{BASE_URL}/api/v1/chat/stream"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        api_base_url=BASE_URL,
        api_prefix="/api/v1",
        max_retries=3,
        retry_base_delay=0.0,
    )


@pytest.fixture
def encoder() -> StreamEventEncoder:
    return StreamEventEncoder()


class SSEReplay:
    """Replays one SSE body per streaming request and records the requests."""

    def __init__(self, *bodies: str | Callable[[httpx.Request], httpx.Response]) -> None:
        self.bodies = list(bodies)
        self.requests: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = self.bodies.pop(0)
        if callable(body):
            return body(request)
        return httpx.Response(
            200,
            content=body.encode("utf-8"),
            headers={"Content-Type": "text/event-stream"},
        )

    def params(self, index: int = -1) -> dict[str, str]:
        return dict(self.requests[index].url.params)


@pytest.fixture
def sse_transport() -> Callable[..., SSEReplay]:
    return SSEReplay


@pytest.fixture
def auth(settings: Settings) -> AuthSession:
    return AuthSession(settings=settings, user=User(id=7, login="alice"))
