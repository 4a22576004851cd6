"""Conversation models — turns, orchestrator states and history DTOs.

Defines:
- :class:`ConversationTurn`: one message of the visible conversation, with
  the progress checklist and answer data of assistant turns
- :class:`ConversationState`: state of the question currently in flight
- History DTOs returned by the conversations endpoint
"""

from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Any, Literal

from pydantic import Field

from models.base import CamelModel
from models.chart import ChartData
from models.chat_response import ChatResponse
from models.checklist import Checklist, PhaseState
from models.errors import ErrorCode
from models.stream_event import OrchestratorPlanEventData, PhaseId


def generate_turn_id() -> str:
    """Generate a client-side turn ID."""
    return f"msg-{uuid.uuid4().hex[:12]}"


# ── State enums ───────────────────────────────────────────────


class ConversationState(str, Enum):
    """Lifecycle of the question in flight.

    IDLE → AWAITING_FIRST_EVENT → STREAMING → COMPLETED | FAILED | AMBIGUITY_PENDING
    """

    IDLE = "idle"
    AWAITING_FIRST_EVENT = "awaiting_first_event"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    AMBIGUITY_PENDING = "ambiguity_pending"


class ResultShape(str, Enum):
    """How a finished answer should be rendered."""

    TEXT = "text"
    TABLE = "table"
    CHART = "chart"


# ── Turns ─────────────────────────────────────────────────────


class ConversationTurn(CamelModel):
    """A single message in the conversation.

    Only the orchestrator mutates turns; renderers read them.
    """

    id: str = Field(default_factory=generate_turn_id)
    role: Literal["user", "assistant"]
    text: str = ""
    timestamp: float = Field(default_factory=time.time)
    is_streaming: bool = False

    checklist: Checklist = Field(default_factory=Checklist)
    steps: list[str] = Field(default_factory=list)  # progress messages, in order
    orchestrator_reasoning: str = ""
    orchestrator_plan: OrchestratorPlanEventData | None = None

    response: ChatResponse | None = None
    has_json_data: bool = False
    json_data: list[dict[str, Any]] = Field(default_factory=list)
    chart_data: ChartData | None = None
    result_shape: ResultShape = ResultShape.TEXT
    error_code: ErrorCode | None = None

    def finish_streaming(self) -> bool:
        """Clear ``is_streaming``.  Returns False if it was already cleared."""
        if not self.is_streaming:
            return False
        self.is_streaming = False
        return True

    @property
    def progress(self) -> dict[PhaseId, PhaseState]:
        return self.checklist.phases

    @property
    def orchestrator_visible(self) -> bool:
        return self.checklist.orchestrator_visible

    @property
    def planner_visible(self) -> bool:
        return self.checklist.planner_visible

    @property
    def structured_result(self) -> list[dict[str, Any]] | None:
        return self.json_data if self.has_json_data else None


# ── History DTOs ──────────────────────────────────────────────


class ConversationSummary(CamelModel):
    """Entry of the user's conversation list."""

    session_id: str
    title: str = ""
    created_at: str | None = None
    last_accessed_at: str | None = None
    message_count: int = 0
    preview: str = ""


class MessageContext(CamelModel):
    """Answer data stored with a persisted assistant message."""

    generated_sql: str | None = None
    intent: str | None = None
    result_count: int | None = None
    execution_time_ms: int | None = None
    query_results: list[dict[str, Any]] | None = None
    chart_data: ChartData | None = None
    identified_tables: list[str] | None = None
    identified_workspaces: list[str] | None = None
    result_columns: list[str] | None = None


class MessageDetail(CamelModel):
    message_id: str
    role: Literal["USER", "ASSISTANT"]
    content: str = ""
    timestamp: str | None = None
    context: MessageContext | None = None


class ConversationDetail(CamelModel):
    """A persisted conversation with its messages."""

    session_id: str
    title: str = ""
    created_at: str | None = None
    last_accessed_at: str | None = None
    messages: list[MessageDetail] = Field(default_factory=list)


class ContinueConversationRequest(CamelModel):
    question: str
    user_id: int
    is_chart_demanded: bool = False
