"""Ambiguity sub-protocol models.

When the pipeline cannot answer without user input it reports an ambiguity
with 1–3 clarification questions (2–3 choices each).  The user's answers
travel back on a second streaming request as a :class:`ClarificationContext`.
"""

from __future__ import annotations

from pydantic import Field

from models.base import CamelModel, NullableWireModel


class ClarificationQuestion(NullableWireModel):
    """A clarification question and its predefined choices."""

    question: str
    choices: list[str] = Field(default_factory=list)


class AmbiguityResponse(NullableWireModel):
    """Ambiguity report, either as ``ambiguity_detected`` data or inside a result."""

    has_ambiguity: bool = False
    questions: list[ClarificationQuestion] = Field(default_factory=list)


class ClarificationContext(CamelModel):
    """User answers sent with the clarification round.

    Keys are the question texts; values are the chosen option, or
    ``"Autre: {text}"`` for a free-text answer.
    """

    user_answers: dict[str, str] = Field(default_factory=dict)


class ClarificationAnswer(CamelModel):
    """Per-question answer state while the user fills the clarification form."""

    question: str
    selected_choice: str | None = None
    custom_answer: str = ""


class ChatOptions(CamelModel):
    """Optional feature flags sent with a question."""

    chart_requested: bool = False
    explanation_requested: bool = False
    selected_columns: list[str] = Field(default_factory=list)


class AmbiguitySession(CamelModel):
    """Pending ambiguity: the question to re-send and what to ask the user."""

    original_question: str
    questions: list[ClarificationQuestion]
    options: ChatOptions = Field(default_factory=ChatOptions)
