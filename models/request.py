"""API request models."""

from __future__ import annotations

import json

from pydantic import Field

from models.ambiguity import ChatOptions, ClarificationContext
from models.base import CamelModel


class ChatStreamRequest(CamelModel):
    """GET /chat/stream — query parameters of one streaming question.

    ``user_id`` is mandatory for the pipeline; it is typed optional so a
    missing identity reaches the stream client, which rejects it before any
    network activity.
    """

    question: str
    user_id: int | None = None
    session_id: str | None = None
    options: ChatOptions = Field(default_factory=ChatOptions)
    clarification: ClarificationContext | None = None

    def to_query_params(self) -> dict[str, str]:
        """Encode as the query string the stream endpoint expects."""
        params: dict[str, str] = {
            "question": self.question,
            "userId": str(self.user_id),
        }
        if self.session_id:
            params["sessionId"] = self.session_id
        params["isChartDemanded"] = str(self.options.chart_requested).lower()
        params["isExplanationDemanded"] = str(self.options.explanation_requested).lower()
        if self.options.selected_columns:
            params["selectedColumns"] = ",".join(self.options.selected_columns)
        if self.clarification is not None:
            params["clarificationJson"] = json.dumps(
                self.clarification.model_dump(by_alias=True), ensure_ascii=False
            )
        return params
