"""Server-Sent Events codec for the chat stream.

Decoding follows the EventSource processing model: lines are accumulated
into a pending event (``event:``, ``data:``, ``id:``, ``retry:``; lines
starting with ``:`` are comments) and a blank line dispatches it.  Multiple
``data:`` lines are joined with ``\\n``.  An event still pending when the
connection ends is discarded.

The encoder produces the pipeline's wire format::

    event: {step}
    data: {"step": ..., "message": ..., "data": ..., "timestamp": ...}

It is used by tests and local mock servers.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from models.stream_event import EventKind


@dataclass(frozen=True)
class ServerSentEvent:
    """One dispatched SSE message."""

    event: str = "message"
    data: str = ""
    id: str | None = None
    retry: int | None = None

    def json(self) -> Any:
        return json.loads(self.data)


class SSEDecoder:
    """Incremental line-oriented SSE decoder."""

    def __init__(self) -> None:
        self._event = ""
        self._data: list[str] = []
        self._last_event_id: str | None = None
        self._retry: int | None = None

    @property
    def last_event_id(self) -> str | None:
        return self._last_event_id

    def decode(self, line: str) -> ServerSentEvent | None:
        """Feed one line (without its terminator).  Returns an event on dispatch."""
        line = line.rstrip("\r\n")

        if not line:
            return self._dispatch()

        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event = value
        elif field == "data":
            self._data.append(value)
        elif field == "id":
            if "\0" not in value:
                self._last_event_id = value
        elif field == "retry":
            if value.isdigit():
                self._retry = int(value)
        return None

    def _dispatch(self) -> ServerSentEvent | None:
        if not self._data:
            self._event = ""
            return None
        sse = ServerSentEvent(
            event=self._event or "message",
            data="\n".join(self._data),
            id=self._last_event_id,
            retry=self._retry,
        )
        self._event = ""
        self._data = []
        return sse


class StreamEventEncoder:
    """Encode pipeline events as SSE text.

    Every public method returns a ready-to-send SSE block.
    """

    @staticmethod
    def _sse(event: str, payload: Any) -> str:
        body = payload if isinstance(payload, str) else json.dumps(
            payload, ensure_ascii=False, default=str
        )
        data_lines = "".join(f"data: {chunk}\n" for chunk in body.split("\n"))
        return f"event: {event}\n{data_lines}\n"

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    def step(
        self,
        kind: EventKind | str,
        message: str = "",
        data: Any = None,
    ) -> str:
        name = kind.value if isinstance(kind, EventKind) else kind
        return self._sse(
            name,
            {"step": name, "message": message, "data": data, "timestamp": self._now()},
        )

    def session_created(self, session_id: str) -> str:
        return self.step(
            EventKind.SESSION_CREATED, "Session créée", {"sessionId": session_id}
        )

    def ambiguity(self, questions: list[dict[str, Any]]) -> str:
        return self.step(
            EventKind.AMBIGUITY_DETECTED,
            "Ambiguïté détectée",
            {"hasAmbiguity": True, "questions": questions},
        )

    def result(self, response: dict[str, Any]) -> str:
        return self.step(EventKind.RESULT, "Réponse générée", response)

    def error(self, message: str) -> str:
        return self.step(EventKind.ERROR, message, None)
