"""Chat stream connection manager.

Opens one streaming GET per question against the pipeline's SSE endpoint
and exposes it as an async iterator of :class:`StreamEvent`:

- events are delivered in exactly the order they are received
- the connection is closed as soon as a terminal event (``result``,
  ``error``, ``ambiguity_detected``) has been read
- transport failures, malformed payloads and a connection ending without a
  terminal event are turned into one synthetic ``error`` event, after which
  iteration stops; nothing is retried here
- :meth:`ChatStream.cancel` closes the connection at any time and no event
  is delivered afterwards

A missing caller identity raises :class:`MissingCallerIdentityError` from
:meth:`ChatStreamClient.stream_chat`, before any connection is attempted.
"""

from __future__ import annotations

import json
import logging
import time
from typing import AsyncIterator

import httpx

from config.settings import Settings, get_settings
from errors.exceptions import MissingCallerIdentityError
from models.ambiguity import ChatOptions, ClarificationContext
from models.errors import ErrorCode, classify_transport_error, format_error
from models.request import ChatStreamRequest
from models.stream_event import EventKind, StreamEvent, is_terminal
from services.sse import ServerSentEvent, SSEDecoder

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------
_client: ChatStreamClient | None = None


class ChatStream:
    """A single streaming connection for one question.

    The connection is opened lazily on the first iteration, so a stream
    cancelled before being consumed never touches the network.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        path: str,
        request: ChatStreamRequest,
        timeout: httpx.Timeout,
    ) -> None:
        self._http = http
        self._path = path
        self._request = request
        self._timeout = timeout
        self._response: httpx.Response | None = None
        self._lines: AsyncIterator[str] | None = None
        self._decoder = SSEDecoder()
        self._closed = False
        self._cancelled = False
        self._opened_at: float | None = None
        self.event_count = 0

    @property
    def request(self) -> ChatStreamRequest:
        return self._request

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    # -- iteration -----------------------------------------------------------

    def __aiter__(self) -> ChatStream:
        return self

    async def __anext__(self) -> StreamEvent:
        if self._closed:
            raise StopAsyncIteration

        try:
            if self._response is None:
                await self._open()

            while True:
                line = await self._next_line()
                if self._closed:
                    raise StopAsyncIteration
                if line is None:
                    return await self._fail(
                        ErrorCode.STREAM_INTERRUPTED,
                        "connection closed before a terminal event",
                    )

                sse = self._decoder.decode(line)
                if sse is None:
                    continue
                event = self._to_event(sse)
                if event is None:
                    continue

                self.event_count += 1
                logger.debug("Stream event #%d: %s", self.event_count, event.step)
                if is_terminal(event.kind):
                    await self.aclose()
                return event

        except (httpx.HTTPError, httpx.StreamError, ValueError) as exc:
            if self._cancelled:
                raise StopAsyncIteration from None
            return await self._fail(classify_transport_error(exc), str(exc))
        except Exception:
            # A read interrupted by cancel() may fail with a transport-specific error.
            if self._cancelled:
                raise StopAsyncIteration from None
            raise

    # -- lifecycle -----------------------------------------------------------

    async def cancel(self) -> None:
        """Close the connection; no further events will be delivered."""
        if self._closed:
            return
        self._cancelled = True
        logger.info(
            "Chat stream cancelled after %d events", self.event_count
        )
        await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._response is not None:
            await self._response.aclose()
            elapsed_ms = (time.monotonic() - (self._opened_at or time.monotonic())) * 1000
            logger.info(
                "Chat stream closed — %d events (%.0fms)", self.event_count, elapsed_ms
            )

    async def __aenter__(self) -> ChatStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # -- internals -----------------------------------------------------------

    async def _open(self) -> None:
        request = self._http.build_request(
            "GET",
            self._path,
            params=self._request.to_query_params(),
            headers={"Accept": "text/event-stream", "Cache-Control": "no-cache"},
            timeout=self._timeout,
        )
        self._opened_at = time.monotonic()
        self._response = await self._http.send(request, stream=True)
        logger.info(
            "Chat stream opened — GET %s → %d",
            self._path, self._response.status_code,
        )
        if self._closed:
            await self._response.aclose()
            raise StopAsyncIteration
        self._response.raise_for_status()
        self._lines = self._response.aiter_lines()

    async def _next_line(self) -> str | None:
        if self._lines is None:
            raise RuntimeError("ChatStream read before the response was opened")
        try:
            return await self._lines.__anext__()
        except StopAsyncIteration:
            return None

    def _to_event(self, sse: ServerSentEvent) -> StreamEvent | None:
        """Parse one SSE message.  Raises ``ValueError`` on a malformed payload."""
        if EventKind.parse(sse.event) is None:
            logger.debug("Ignoring unsubscribed event type: %s", sse.event)
            return None

        payload = json.loads(sse.data)
        if not isinstance(payload, dict):
            raise ValueError(f"{sse.event} data is not a JSON object")
        payload["step"] = sse.event
        if payload.get("message") is None:
            payload["message"] = ""
        return StreamEvent.model_validate(payload)

    async def _fail(self, code: ErrorCode, detail: str) -> StreamEvent:
        logger.warning(
            "Chat stream failed after %d events — %s",
            self.event_count, format_error(code, detail),
        )
        await self.aclose()
        return StreamEvent(
            step=EventKind.ERROR.value,
            message="",
            data={"code": code.value, "detail": detail},
        )


class ChatStreamClient:
    """Factory of :class:`ChatStream` objects sharing one connection pool."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._base_url = settings.api_url
        self._stream_path = settings.chat_stream_path
        self._health_path = settings.chat_health_path
        self._stream_timeout = httpx.Timeout(
            settings.request_timeout,
            connect=settings.stream_connect_timeout,
            read=settings.stream_read_timeout,
        )
        self._request_timeout = settings.request_timeout
        self._transport = transport
        self._http: httpx.AsyncClient | None = None

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Create the underlying ``httpx.AsyncClient`` connection pool."""
        if self._http is not None:
            return
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._request_timeout),
            transport=self._transport,
        )
        logger.info("ChatStreamClient started — base_url=%s", self._base_url)

    async def close(self) -> None:
        """Gracefully close the connection pool."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None
            logger.info("ChatStreamClient closed")

    # -- public API ----------------------------------------------------------

    def stream_chat(self, request: ChatStreamRequest) -> ChatStream:
        """Return a stream for *request*.

        Raises :class:`MissingCallerIdentityError` when ``user_id`` is absent.
        """
        if request.user_id is None:
            raise MissingCallerIdentityError()
        return ChatStream(
            self._ensure_started(), self._stream_path, request, self._stream_timeout
        )

    def stream_question(
        self,
        question: str,
        user_id: int | None,
        session_id: str | None = None,
        options: ChatOptions | None = None,
    ) -> ChatStream:
        """First round: a plain question."""
        return self.stream_chat(
            ChatStreamRequest(
                question=question,
                user_id=user_id,
                session_id=session_id,
                options=options or ChatOptions(),
            )
        )

    def stream_clarification(
        self,
        question: str,
        user_id: int | None,
        clarification: ClarificationContext,
        session_id: str | None = None,
        options: ChatOptions | None = None,
    ) -> ChatStream:
        """Clarification round: the original question plus the user's answers."""
        return self.stream_chat(
            ChatStreamRequest(
                question=question,
                user_id=user_id,
                session_id=session_id,
                options=options or ChatOptions(),
                clarification=clarification,
            )
        )

    async def health_check(self) -> str:
        """GET the chat health endpoint and return its body."""
        response = await self._ensure_started().get(self._health_path)
        response.raise_for_status()
        return response.text

    # -- internals -----------------------------------------------------------

    def _ensure_started(self) -> httpx.AsyncClient:
        if self._http is None:
            raise RuntimeError(
                "ChatStreamClient not started — call await client.start() first"
            )
        return self._http


# ---------------------------------------------------------------------------
# Singleton accessor
# ---------------------------------------------------------------------------

def get_chat_stream_client() -> ChatStreamClient:
    """Return the module-level ChatStreamClient singleton (create if needed)."""
    global _client
    if _client is None:
        _client = ChatStreamClient()
    return _client
