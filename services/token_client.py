"""Token usage statistics — fetched once or polled periodically.

Polling only reads the caller identity; it never touches conversation
state.
"""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

import httpx

from config.settings import Settings, get_settings
from errors.exceptions import ApiClientError
from models.auth import TokenStats
from services.api_client import ApiClient

logger = logging.getLogger(__name__)


class TokenClient:
    def __init__(self, api: ApiClient, settings: Settings | None = None) -> None:
        settings = settings or get_settings()
        self._api = api
        self._path = settings.tokens_path
        self._interval = settings.token_poll_interval
        self._default_quota = settings.default_token_quota

    async def get_user_token_stats(self, user_id: int) -> TokenStats:
        data = await self._api.get(f"{self._path}/user/{user_id}")
        return TokenStats.model_validate(data)

    async def poll_user_token_stats(
        self, user_id: int, interval: float | None = None
    ) -> AsyncIterator[TokenStats]:
        """Yield stats immediately, then every *interval* seconds.

        A failed fetch yields zero-usage stats against the default quota so
        the display keeps updating.
        """
        interval = self._interval if interval is None else interval
        while True:
            try:
                yield await self.get_user_token_stats(user_id)
            except (ApiClientError, httpx.HTTPError) as exc:
                logger.warning("Token stats fetch failed for user %d: %s", user_id, exc)
                yield self.fallback_stats(user_id)
            await asyncio.sleep(interval)

    def fallback_stats(self, user_id: int) -> TokenStats:
        return TokenStats(
            id_user=user_id,
            total_tokens_consumed=0,
            max_tokens_allowed=self._default_quota,
            remaining_tokens=self._default_quota,
            usage_percentage=0.0,
            quota_exceeded=False,
        )
