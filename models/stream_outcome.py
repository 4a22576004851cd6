"""Normalized stream outcomes — what an event means to the orchestrator.

Raw events are reduced to one of five cases before the conversation state
machine sees them.  Both ambiguity deliveries (a dedicated
``ambiguity_detected`` event, or a flag embedded in the ``result`` payload)
become the same :class:`AmbiguityDetected` case.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from pydantic import ValidationError

from models.ambiguity import AmbiguityResponse, ClarificationQuestion
from models.chat_response import ChatResponse
from models.errors import ErrorCode
from models.stream_event import EventKind, SessionCreatedData, StreamEvent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionCreated:
    event: StreamEvent
    session_id: str | None


@dataclass(frozen=True)
class Progress:
    event: StreamEvent


@dataclass(frozen=True)
class AmbiguityDetected:
    event: StreamEvent
    questions: tuple[ClarificationQuestion, ...]


@dataclass(frozen=True)
class Completed:
    event: StreamEvent
    response: ChatResponse


@dataclass(frozen=True)
class Failed:
    event: StreamEvent
    code: ErrorCode
    message: str


StreamOutcome = Union[SessionCreated, Progress, AmbiguityDetected, Completed, Failed]


def classify_event(event: StreamEvent) -> StreamOutcome:
    """Reduce *event* to a :class:`StreamOutcome`.  Never raises."""
    kind = event.kind

    if kind is EventKind.SESSION_CREATED:
        return SessionCreated(event=event, session_id=_session_id(event))

    if kind is EventKind.ERROR:
        return Failed(event=event, code=_error_code(event), message=event.message)

    if kind is EventKind.AMBIGUITY_DETECTED:
        try:
            report = AmbiguityResponse.model_validate(event.data or {})
        except ValidationError as exc:
            return _malformed(event, exc)
        if not report.questions:
            return _malformed(event, "ambiguity reported without questions")
        return AmbiguityDetected(event=event, questions=tuple(report.questions))

    if kind is EventKind.RESULT:
        try:
            response = ChatResponse.model_validate(event.data or {})
        except ValidationError as exc:
            return _malformed(event, exc)
        report = response.ambiguity_report()
        if report is not None:
            if not report.questions:
                return _malformed(event, "ambiguity reported without questions")
            return AmbiguityDetected(event=event, questions=tuple(report.questions))
        return Completed(event=event, response=response)

    return Progress(event=event)


def _session_id(event: StreamEvent) -> str | None:
    if not isinstance(event.data, dict):
        return None
    try:
        return SessionCreatedData.model_validate(event.data).session_id
    except ValidationError:
        return None


def _error_code(event: StreamEvent) -> ErrorCode:
    if isinstance(event.data, dict):
        code = event.data.get("code")
        if code in ErrorCode._value2member_map_:
            return ErrorCode(code)
    return ErrorCode.PIPELINE_ERROR


def _malformed(event: StreamEvent, reason: object) -> Failed:
    logger.warning("Malformed %s payload: %s", event.step, reason)
    return Failed(event=event, code=ErrorCode.MALFORMED_EVENT, message="")
