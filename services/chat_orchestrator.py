"""Conversation orchestrator — the streaming conversation state machine.

Owns the visible turn list, the session id, the "last response" pointer
and the pending :class:`AmbiguitySession`.  Each submitted question gets
its own :class:`QuestionRun`; events read from that run's stream are
routed only to the run's assistant turn, so a superseded stream can never
write into a newer question.

State of the question in flight::

    IDLE → AWAITING_FIRST_EVENT → STREAMING → COMPLETED
                                            → FAILED
                                            → AMBIGUITY_PENDING
    AMBIGUITY_PENDING → (resolve_ambiguity) AWAITING_FIRST_EVENT …
    AMBIGUITY_PENDING → (dismiss_ambiguity) IDLE

Every path that created an assistant turn ends with ``is_streaming``
cleared exactly once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Protocol

from pydantic import ValidationError

from errors.exceptions import ConversationStateError
from models.ambiguity import AmbiguitySession, ChatOptions, ClarificationContext
from models.chat_response import ChatResponse
from models.conversation import (
    ConversationDetail,
    ConversationState,
    ConversationTurn,
    MessageDetail,
)
from models.errors import ErrorCode
from models.stream_event import (
    EventKind,
    OrchestratorPlanEventData,
    OrchestratorReasoningEventData,
    StreamEvent,
)
from models.stream_outcome import (
    AmbiguityDetected,
    Completed,
    Failed,
    Progress,
    SessionCreated,
    StreamOutcome,
    classify_event,
)
from services.answer_extractor import extract_answer
from services.chat_stream import ChatStream, ChatStreamClient
from services.checklist import project
from services.conversation_client import ConversationClient
from services.csv_export import rows_to_csv

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = (
    "Désolé, une erreur est survenue lors du traitement de votre question."
)
UNRESOLVED_AMBIGUITY_MESSAGE = (
    "Désolé, je n'ai pas pu lever l'ambiguïté de votre question malgré vos "
    "précisions. Merci de la reformuler."
)
CANCELLED_MESSAGE = "Requête annulée."

MAX_ROUNDS = 2


class CallerIdentity(Protocol):
    def require_user_id(self) -> int: ...


EventListener = Callable[[StreamOutcome, "ConversationTurn | None"], None]


@dataclass
class QuestionRun:
    """One streaming round of one question."""

    question: str
    options: ChatOptions
    round: int = 1
    stream: ChatStream | None = None
    turn: ConversationTurn | None = None
    finished: bool = False
    discarded: bool = False


class ChatOrchestrator:
    """Drives questions through the chat stream and keeps the turn list."""

    def __init__(
        self,
        stream_client: ChatStreamClient,
        auth: CallerIdentity,
        history: ConversationClient | None = None,
        on_event: EventListener | None = None,
    ) -> None:
        self._stream_client = stream_client
        self._auth = auth
        self._history = history
        self._on_event = on_event

        self.turns: list[ConversationTurn] = []
        self.session_id: str | None = None
        self.last_response: ChatResponse | None = None
        self.ambiguity: AmbiguitySession | None = None
        self.state = ConversationState.IDLE
        self._run: QuestionRun | None = None

    # ── Submission ───────────────────────────────────────────

    async def submit(
        self, question: str, options: ChatOptions | None = None
    ) -> ConversationTurn | None:
        """Ask *question* and consume its stream until it terminates.

        Returns the assistant turn, or None when the question ended in a
        pending ambiguity.  Raises :class:`MissingCallerIdentityError`
        before touching any state when no caller is authenticated.
        """
        user_id = self._auth.require_user_id()
        await self.cancel()

        options = options or ChatOptions()
        stream = self._stream_client.stream_question(
            question, user_id, session_id=self.session_id, options=options
        )
        self.ambiguity = None
        self.turns.append(ConversationTurn(role="user", text=question))
        run = QuestionRun(question=question, options=options)
        logger.info("Question submitted (session=%s)", self.session_id)
        return await self._consume(run, stream)

    async def resolve_ambiguity(
        self, context: ClarificationContext
    ) -> ConversationTurn | None:
        """Send the clarification round for the pending ambiguity."""
        session = self.ambiguity
        if session is None:
            raise ConversationStateError("resolve an ambiguity", self.state.value)
        user_id = self._auth.require_user_id()
        stream = self._stream_client.stream_clarification(
            session.original_question,
            user_id,
            context,
            session_id=self.session_id,
            options=session.options,
        )
        self.ambiguity = None

        run = QuestionRun(
            question=session.original_question,
            options=session.options,
            round=MAX_ROUNDS,
            turn=ConversationTurn(role="assistant", is_streaming=True),
        )
        self.turns.append(run.turn)
        logger.info(
            "Clarification round sent with %d answers", len(context.user_answers)
        )
        return await self._consume(run, stream)

    def dismiss_ambiguity(self) -> None:
        """Drop the pending ambiguity and go back to IDLE."""
        if self.ambiguity is not None:
            logger.info("Ambiguity dismissed")
        self.ambiguity = None
        if self.state is ConversationState.AMBIGUITY_PENDING:
            self.state = ConversationState.IDLE

    async def cancel(self) -> None:
        """Close the in-flight stream and finalise its turn.

        State already applied from earlier events is kept.
        """
        run = self._run
        if run is None or run.finished:
            return
        run.finished = True
        if run.stream is not None:
            await run.stream.cancel()
        if run.turn is not None:
            if not run.turn.text:
                run.turn.text = CANCELLED_MESSAGE
            run.turn.finish_streaming()
        self.state = ConversationState.IDLE

    # ── Event routing ────────────────────────────────────────

    def apply_event(self, run: QuestionRun, event: StreamEvent) -> StreamOutcome | None:
        """Apply one event of *run*.  Events of a finished run are dropped."""
        if run.finished:
            logger.debug("Dropping %s event of a finished run", event.step)
            return None

        outcome = classify_event(event)
        if isinstance(outcome, SessionCreated):
            if outcome.session_id:
                self.session_id = outcome.session_id
            self._notify(outcome, run.turn)
            return outcome

        turn = self._ensure_turn(run)
        if self._is_current(run) and self.state is ConversationState.AWAITING_FIRST_EVENT:
            self.state = ConversationState.STREAMING
        if event.message:
            turn.steps.append(event.message)

        if isinstance(outcome, Progress):
            turn.checklist = project(turn.checklist, event)
            self._capture_orchestrator(turn, event)
        elif isinstance(outcome, AmbiguityDetected):
            self._on_ambiguity(run, turn, outcome)
        elif isinstance(outcome, Completed):
            self._on_completed(run, turn, outcome)
        elif isinstance(outcome, Failed):
            self._on_failed(run, turn, outcome)

        self._notify(outcome, turn)
        return outcome

    async def _consume(
        self, run: QuestionRun, stream: ChatStream
    ) -> ConversationTurn | None:
        run.stream = stream
        self._run = run
        self.state = ConversationState.AWAITING_FIRST_EVENT
        try:
            async for event in stream:
                self.apply_event(run, event)
                if run.finished:
                    break
        finally:
            await stream.aclose()
            if not run.finished:
                # consumer interrupted from outside, e.g. task cancellation
                if self._is_current(run):
                    await self.cancel()
                else:
                    self._abandon(run)
        return None if run.discarded else run.turn

    def _ensure_turn(self, run: QuestionRun) -> ConversationTurn:
        if run.turn is None:
            run.turn = ConversationTurn(role="assistant", is_streaming=True)
            self.turns.append(run.turn)
            logger.debug("Assistant turn %s created", run.turn.id)
        return run.turn

    def _on_ambiguity(
        self, run: QuestionRun, turn: ConversationTurn, outcome: AmbiguityDetected
    ) -> None:
        if run.round >= MAX_ROUNDS:
            logger.warning("Ambiguity persisted after clarification")
            turn.text = UNRESOLVED_AMBIGUITY_MESSAGE
            turn.error_code = ErrorCode.AMBIGUITY_UNRESOLVED
            self._finish(run, ConversationState.FAILED)
            return

        self.turns = [t for t in self.turns if t is not turn]
        run.discarded = True
        self._finish(run, ConversationState.AMBIGUITY_PENDING)
        self.ambiguity = AmbiguitySession(
            original_question=run.question,
            questions=list(outcome.questions),
            options=run.options,
        )
        logger.info("Ambiguity detected — %d questions", len(outcome.questions))

    def _on_completed(
        self, run: QuestionRun, turn: ConversationTurn, outcome: Completed
    ) -> None:
        response = outcome.response
        extracted = extract_answer(response.answer, response.rows, response.chart_data)

        turn.response = response
        turn.text = extracted.text
        turn.has_json_data = extracted.has_json_data
        turn.json_data = extracted.rows
        turn.chart_data = extracted.chart
        turn.result_shape = extracted.shape
        turn.checklist = project(turn.checklist, outcome.event)

        self.last_response = response
        if response.session_id:
            self.session_id = response.session_id
        self._finish(run, ConversationState.COMPLETED)
        logger.info(
            "Question completed — shape=%s rows=%d",
            extracted.shape.value, len(extracted.rows),
        )

    def _on_failed(
        self, run: QuestionRun, turn: ConversationTurn, outcome: Failed
    ) -> None:
        turn.text = outcome.message or GENERIC_ERROR_MESSAGE
        turn.error_code = outcome.code
        self._finish(run, ConversationState.FAILED)
        logger.warning("Question failed — %s", outcome.code.value)

    def _finish(self, run: QuestionRun, state: ConversationState) -> None:
        run.finished = True
        if run.turn is not None:
            run.turn.finish_streaming()
        if self._is_current(run):
            self.state = state

    def _abandon(self, run: QuestionRun) -> None:
        run.finished = True
        if run.turn is not None:
            run.turn.finish_streaming()

    def _is_current(self, run: QuestionRun) -> bool:
        return run is self._run

    def _notify(self, outcome: StreamOutcome, turn: ConversationTurn | None) -> None:
        if self._on_event is not None:
            self._on_event(outcome, turn)

    @staticmethod
    def _capture_orchestrator(turn: ConversationTurn, event: StreamEvent) -> None:
        if not isinstance(event.data, dict):
            return
        try:
            if event.kind is EventKind.ORCHESTRATOR_PLAN:
                turn.orchestrator_plan = OrchestratorPlanEventData.model_validate(event.data)
            elif event.kind is EventKind.ORCHESTRATOR_REASONING:
                reasoning = OrchestratorReasoningEventData.model_validate(event.data)
                if reasoning.reasoning:
                    turn.orchestrator_reasoning = reasoning.reasoning
        except ValidationError as exc:
            logger.debug("Ignoring malformed %s payload: %s", event.step, exc)

    # ── Conversation lifecycle ───────────────────────────────

    async def new_conversation(self) -> None:
        await self.cancel()
        self.turns = []
        self.session_id = None
        self.last_response = None
        self.ambiguity = None
        self._run = None
        self.state = ConversationState.IDLE

    async def open_conversation(self, session_id: str) -> list[ConversationTurn]:
        """Replace the turn list with a persisted conversation."""
        if self._history is None:
            raise ConversationStateError("open a conversation without history", self.state.value)
        detail = await self._history.get_conversation(session_id, with_results=True)
        await self.new_conversation()
        self.turns = turns_from_detail(detail)
        self.session_id = detail.session_id
        self.last_response = next(
            (t.response for t in reversed(self.turns) if t.response is not None), None
        )
        return self.turns

    # ── Auxiliary actions ────────────────────────────────────

    def last_generated_sql(self) -> str | None:
        if self.last_response is None:
            return None
        return self.last_response.generated_sql

    def export_last_results_csv(self, with_bom: bool = False) -> str | None:
        """CSV text of the last result rows, or None when there are none."""
        if self.last_response is None or not self.last_response.rows:
            return None
        return rows_to_csv(self.last_response.rows, with_bom=with_bom)


def turns_from_detail(detail: ConversationDetail) -> list[ConversationTurn]:
    """Rebuild finished turns from a persisted conversation."""
    return [_turn_from_message(detail.session_id, m) for m in detail.messages]


def _turn_from_message(session_id: str, message: MessageDetail) -> ConversationTurn:
    if message.role == "USER":
        return ConversationTurn(id=message.message_id, role="user", text=message.content)

    context = message.context
    rows = (context.query_results if context else None) or []
    chart = context.chart_data if context else None
    extracted = extract_answer(message.content, rows, chart)
    response = ChatResponse(
        session_id=session_id,
        answer=message.content,
        generated_sql=context.generated_sql if context else None,
        query_results=rows or None,
        chart_data=chart,
    )
    return ConversationTurn(
        id=message.message_id,
        role="assistant",
        text=extracted.text,
        response=response,
        has_json_data=extracted.has_json_data,
        json_data=extracted.rows,
        chart_data=extracted.chart,
        result_shape=extracted.shape,
    )
