"""Conversation history client — persisted conversations of a user.

Read-only from the orchestrator's point of view except for deletion; a
loaded :class:`ConversationDetail` is turned into turns by
``ChatOrchestrator.open_conversation`` without going through the stream.
"""

from __future__ import annotations

import logging
from typing import Any

from config.settings import Settings, get_settings
from errors.exceptions import MissingCallerIdentityError
from models.conversation import (
    ContinueConversationRequest,
    ConversationDetail,
    ConversationSummary,
)
from services.api_client import ApiClient

logger = logging.getLogger(__name__)


class ConversationClient:
    """Access to the ``/conversations`` endpoints."""

    def __init__(self, api: ApiClient, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._api = api
        self._path = settings.conversations_path
        self._default_limit = settings.conversation_history_limit

    async def list_conversations(
        self, user_id: int | None, limit: int | None = None
    ) -> list[ConversationSummary]:
        """Most recent conversations of *user_id*."""
        if user_id is None:
            raise MissingCallerIdentityError("conversation list")
        data = await self._api.get(
            self._path,
            params={"userId": str(user_id), "limit": str(limit or self._default_limit)},
        )
        return [ConversationSummary.model_validate(item) for item in data or []]

    async def get_conversation(
        self, session_id: str, with_results: bool = False
    ) -> ConversationDetail:
        """Load one conversation; ``with_results`` includes stored result rows."""
        data = await self._api.get(
            f"{self._path}/{session_id}",
            params={"withResults": str(with_results).lower()},
        )
        detail = ConversationDetail.model_validate(data)
        logger.info(
            "Loaded conversation %s (%d messages)", session_id, len(detail.messages)
        )
        return detail

    async def continue_conversation(
        self, session_id: str, request: ContinueConversationRequest
    ) -> Any:
        return await self._api.post(
            f"{self._path}/{session_id}/continue",
            json_body=request.model_dump(by_alias=True),
        )

    async def delete_conversation(self, session_id: str) -> None:
        await self._api.delete(f"{self._path}/{session_id}")
        logger.info("Deleted conversation %s", session_id)
