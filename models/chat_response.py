"""Final answer record carried by the terminal ``result`` event."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from pydantic import Field, ValidationError, field_validator

from models.ambiguity import AmbiguityResponse, ClarificationQuestion
from models.base import NullableWireModel
from models.chart import ChartData

logger = logging.getLogger(__name__)


class ConfidenceLevel(str, Enum):
    TRES_ELEVE = "TRES_ELEVE"
    ELEVE = "ELEVE"
    MOYEN = "MOYEN"
    FAIBLE = "FAIBLE"


class SqlConfidenceScore(NullableWireModel):
    global_score: float = 0.0
    level: ConfidenceLevel | None = None
    recommendation: str = ""


class ExecutionMetadata(NullableWireModel):
    """How the pipeline produced the answer."""

    intent: str = ""
    identified_workspaces: list[str] | None = None
    identified_tables: list[str] = Field(default_factory=list)
    identified_columns: list[str] = Field(default_factory=list)
    execution_time_ms: int = 0
    result_count: int = 0
    sql_executed: bool = False
    confidence_score: float | None = None
    confidence_level: str | None = None


class ChatResponse(NullableWireModel):
    """The structured answer to one question.

    An ambiguity may be reported inside the result, either flat
    (``hasAmbiguity`` + ``questions``) or nested under ``ambiguity``.
    A chart descriptor that does not validate is dropped; the answer and
    rows are kept.
    """

    session_id: str | None = None
    answer: str = ""
    generated_sql: str | None = None
    query_results: list[dict[str, Any]] | None = None
    metadata: ExecutionMetadata | None = None
    confidence_score: SqlConfidenceScore | None = None
    chart_data: ChartData | None = None

    has_ambiguity: bool = False
    questions: list[ClarificationQuestion] = Field(default_factory=list)
    ambiguity: AmbiguityResponse | None = None

    @field_validator("chart_data", mode="before")
    @classmethod
    def _drop_invalid_chart(cls, value: Any) -> Any:
        if value is None or isinstance(value, ChartData):
            return value
        try:
            return ChartData.model_validate(value)
        except ValidationError as exc:
            logger.warning("Ignoring invalid chart descriptor: %s", exc)
            return None

    def ambiguity_report(self) -> AmbiguityResponse | None:
        """Return the embedded ambiguity, if the result carries one."""
        if self.ambiguity is not None and self.ambiguity.has_ambiguity:
            return self.ambiguity
        if self.has_ambiguity:
            return AmbiguityResponse(has_ambiguity=True, questions=self.questions)
        return None

    @property
    def rows(self) -> list[dict[str, Any]]:
        return self.query_results or []
