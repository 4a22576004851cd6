"""Chat stream event protocol — event kinds, payloads and phase mapping.

The pipeline emits named SSE events.  Every event's data is a JSON object
``{step, message, data, timestamp}``; the ``data`` shape depends on the kind:

- ``session_created``:       ``{sessionId}``
- ``planner_*``:             ``{phase, status, attempt}``
- ``orchestrator_plan``:     :class:`OrchestratorPlanEventData`
- ``orchestrator_reasoning``: :class:`OrchestratorReasoningEventData`
- ``ambiguity_detected``:    ``{hasAmbiguity, questions}``
- ``result``:                the full ``ChatResponse`` record
- ``error``:                 free-form, the message carries the detail

Three kinds terminate a stream: ``result``, ``error`` and
``ambiguity_detected``.  Every other kind is progress only.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import ConfigDict, Field

from models.base import CamelModel


class EventKind(str, Enum):
    """Closed vocabulary of named events emitted by the pipeline."""

    SESSION_CREATED = "session_created"
    INTENT = "intent"
    INTENT_RESULT = "intent_result"
    WORKSPACE = "workspace"
    WORKSPACE_RESULT = "workspace_result"
    WORKSPACE_FALLBACK = "workspace_fallback"
    SQL_EXAMPLES = "sql_examples"
    SQL_EXAMPLES_RESULT = "sql_examples_result"
    TABLE_SEARCH = "table_search"
    TABLE_SEARCH_RESULT = "table_search_result"
    FK_EXPANSION = "fk_expansion"
    FK_EXPANSION_RESULT = "fk_expansion_result"
    SCHEMA_RETRIEVAL = "schema_retrieval"
    SCHEMA_RETRIEVAL_RESULT = "schema_retrieval_result"
    SQL_GENERATION = "sql_generation"
    SQL_PREVIEW = "sql_preview"
    CONFIDENCE_SCORE = "confidence_score"
    AMBIGUITY_DETECTED = "ambiguity_detected"
    AMBIGUITY_RESOLUTION = "ambiguity_resolution"
    EXECUTION = "execution"
    EXECUTION_RESULT = "execution_result"
    SQL_RETRY = "sql_retry"
    SQL_RETRY_SUCCESS = "sql_retry_success"
    ANSWER_GENERATION = "answer_generation"
    CHART_GENERATION = "chart_generation"
    CHART_GENERATED = "chart_generated"
    RESULT = "result"
    ERROR = "error"
    # Planner
    PLANNER_REQUESTED = "planner_requested"
    PLANNER_EXECUTION = "planner_execution"
    PLANNER_STRATEGY = "planner_strategy"
    PLANNER_THINKING = "planner_thinking"
    PLANNER_SYNTHESIS = "planner_synthesis"
    PLANNER_COMPLETED = "planner_completed"
    # Orchestrator
    ORCHESTRATOR = "orchestrator"
    ORCHESTRATOR_THINKING = "orchestrator_thinking"
    ORCHESTRATOR_PLAN = "orchestrator_plan"
    ORCHESTRATOR_REASONING = "orchestrator_reasoning"
    ORCHESTRATOR_TASK = "orchestrator_task"
    ORCHESTRATOR_SYNTHESIS = "orchestrator_synthesis"

    @classmethod
    def parse(cls, name: str | None) -> EventKind | None:
        """Return the kind for *name*, or None when it is outside the vocabulary."""
        if not name:
            return None
        try:
            return cls(name)
        except ValueError:
            return None


class PhaseId(str, Enum):
    """Pipeline phases tracked for progress display, in display order.

    The three ``PLANNER_*`` members are sub-phases of ``SQL_GENERATION``.
    """

    INTENT = "intent"
    WORKSPACE = "workspace"
    SCHEMA = "schema"
    SQL_EXAMPLES = "sql_examples"
    SQL_GENERATION = "sql_generation"
    PLANNER_STRATEGY = "planner_strategy"
    PLANNER_THINKING = "planner_thinking"
    PLANNER_SYNTHESIS = "planner_synthesis"
    ORCHESTRATION = "orchestration"
    EXECUTION = "execution"
    ANSWER = "answer"


TOP_LEVEL_PHASES: tuple[PhaseId, ...] = (
    PhaseId.INTENT,
    PhaseId.WORKSPACE,
    PhaseId.SCHEMA,
    PhaseId.SQL_EXAMPLES,
    PhaseId.SQL_GENERATION,
    PhaseId.ORCHESTRATION,
    PhaseId.EXECUTION,
    PhaseId.ANSWER,
)

PLANNER_SUB_PHASES: tuple[PhaseId, ...] = (
    PhaseId.PLANNER_STRATEGY,
    PhaseId.PLANNER_THINKING,
    PhaseId.PLANNER_SYNTHESIS,
)

TERMINAL_KINDS: frozenset[EventKind] = frozenset(
    {EventKind.RESULT, EventKind.ERROR, EventKind.AMBIGUITY_DETECTED}
)

_PHASE_TRIGGERS: dict[PhaseId, tuple[EventKind, ...]] = {
    PhaseId.INTENT: (EventKind.INTENT, EventKind.INTENT_RESULT),
    PhaseId.WORKSPACE: (
        EventKind.WORKSPACE,
        EventKind.WORKSPACE_RESULT,
        EventKind.WORKSPACE_FALLBACK,
    ),
    PhaseId.SCHEMA: (
        EventKind.TABLE_SEARCH,
        EventKind.TABLE_SEARCH_RESULT,
        EventKind.FK_EXPANSION,
        EventKind.FK_EXPANSION_RESULT,
        EventKind.SCHEMA_RETRIEVAL,
        EventKind.SCHEMA_RETRIEVAL_RESULT,
    ),
    PhaseId.SQL_EXAMPLES: (EventKind.SQL_EXAMPLES, EventKind.SQL_EXAMPLES_RESULT),
    PhaseId.SQL_GENERATION: (
        EventKind.SQL_GENERATION,
        EventKind.SQL_PREVIEW,
        EventKind.CONFIDENCE_SCORE,
        EventKind.AMBIGUITY_DETECTED,
        EventKind.AMBIGUITY_RESOLUTION,
        EventKind.PLANNER_REQUESTED,
        EventKind.PLANNER_EXECUTION,
        EventKind.PLANNER_COMPLETED,
    ),
    PhaseId.PLANNER_STRATEGY: (EventKind.PLANNER_STRATEGY,),
    PhaseId.PLANNER_THINKING: (EventKind.PLANNER_THINKING,),
    PhaseId.PLANNER_SYNTHESIS: (EventKind.PLANNER_SYNTHESIS,),
    PhaseId.ORCHESTRATION: (
        EventKind.ORCHESTRATOR,
        EventKind.ORCHESTRATOR_THINKING,
        EventKind.ORCHESTRATOR_PLAN,
        EventKind.ORCHESTRATOR_REASONING,
        EventKind.ORCHESTRATOR_TASK,
        EventKind.ORCHESTRATOR_SYNTHESIS,
    ),
    PhaseId.EXECUTION: (
        EventKind.EXECUTION,
        EventKind.EXECUTION_RESULT,
        EventKind.SQL_RETRY,
        EventKind.SQL_RETRY_SUCCESS,
    ),
    PhaseId.ANSWER: (
        EventKind.ANSWER_GENERATION,
        EventKind.CHART_GENERATION,
        EventKind.CHART_GENERATED,
        EventKind.RESULT,
    ),
}

_KIND_TO_PHASE: dict[EventKind, PhaseId] = {
    kind: phase for phase, kinds in _PHASE_TRIGGERS.items() for kind in kinds
}

_COMPLETION_SUFFIXES = ("_result", "_success", "_completed", "_generated", "_fallback")


def phase_for(kind: EventKind | None) -> PhaseId | None:
    """Return the phase (or planner sub-phase) an event kind advances.

    ``session_created`` and ``error`` map to no phase.
    """
    if kind is None:
        return None
    return _KIND_TO_PHASE.get(kind)


def is_completion_event(kind: EventKind) -> bool:
    """True when the kind's name denotes a finished step rather than a start."""
    return kind is EventKind.RESULT or kind.value.endswith(_COMPLETION_SUFFIXES)


def is_terminal(kind: EventKind | None) -> bool:
    """True for the kinds after which the pipeline sends nothing more."""
    return kind in TERMINAL_KINDS


def is_orchestration_event(kind: EventKind | None) -> bool:
    return kind is not None and kind.value.startswith("orchestrator")


# ── Event record ─────────────────────────────────────────────


class StreamEvent(CamelModel):
    """One event received on a chat stream.  Immutable."""

    model_config = ConfigDict(frozen=True)

    step: str
    message: str = ""
    data: Any = None
    timestamp: str | None = None

    @property
    def kind(self) -> EventKind | None:
        return EventKind.parse(self.step)


# ── Typed payloads ───────────────────────────────────────────


class SessionCreatedData(CamelModel):
    session_id: str


class OrchestratorPlanStep(CamelModel):
    id: str
    description: str = ""
    type: str = ""
    tool: str | None = None


class OrchestratorPlanEventData(CamelModel):
    """Data of ``orchestrator_plan``: the decomposition into sub-tasks."""

    total_steps_estimated: int = 0
    steps: list[OrchestratorPlanStep] = Field(default_factory=list)


class OrchestratorReasoningEventData(CamelModel):
    """Data of ``orchestrator_reasoning``."""

    reasoning: str = ""
    status: str = ""
    iteration: int = 0
