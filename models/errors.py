"""Structured error codes for terminal ``error`` events.

Every failure the client observes on a chat stream ends as one ``error``
event whose ``data`` carries a code from :class:`ErrorCode`.  Errors sent by
the pipeline itself are tagged ``PIPELINE_ERROR``; the other codes are
produced locally by the stream connection manager or the orchestrator.
"""

from __future__ import annotations

from enum import Enum

import httpx


class ErrorCode(str, Enum):
    """Error codes attached to terminal error events."""

    PIPELINE_ERROR = "PIPELINE_ERROR"
    TRANSPORT_ERROR = "TRANSPORT_ERROR"
    HTTP_STATUS_ERROR = "HTTP_STATUS_ERROR"
    MALFORMED_EVENT = "MALFORMED_EVENT"
    STREAM_INTERRUPTED = "STREAM_INTERRUPTED"
    AMBIGUITY_UNRESOLVED = "AMBIGUITY_UNRESOLVED"


def format_error(code: ErrorCode, detail: str) -> str:
    """Format an error for logs and event messages.

    Returns:
        ``{ERROR_CODE}: {detail}``
    """
    return f"{code.value}: {detail}"


def classify_transport_error(exc: BaseException) -> ErrorCode:
    """Map an exception raised while reading a stream to an :class:`ErrorCode`.

    Classification order (first match wins):
        1. ``httpx.HTTPStatusError`` → ``HTTP_STATUS_ERROR``
        2. ``ValueError`` (JSON / payload validation) → ``MALFORMED_EVENT``
        3. ``httpx.RemoteProtocolError`` → ``STREAM_INTERRUPTED``
        4. anything else → ``TRANSPORT_ERROR``
    """
    if isinstance(exc, httpx.HTTPStatusError):
        return ErrorCode.HTTP_STATUS_ERROR
    if isinstance(exc, ValueError):
        return ErrorCode.MALFORMED_EVENT
    if isinstance(exc, httpx.RemoteProtocolError):
        return ErrorCode.STREAM_INTERRUPTED
    return ErrorCode.TRANSPORT_ERROR
