"""Tests for services/token_client.py — token usage statistics."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from errors.exceptions import ApiClientError
from services.api_client import ApiClient
from services.token_client import TokenClient

STATS = {
    "idUser": 7,
    "totalTokensConsumed": 1200,
    "maxTokensAllowed": 50000,
    "remainingTokens": 48800,
    "usagePercentage": 2.4,
    "quotaExceeded": False,
}


class TestTokenClient:
    @pytest.mark.asyncio
    async def test_get_user_token_stats(self, settings):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=STATS)

        api = ApiClient(settings=settings, transport=httpx.MockTransport(handler))
        await api.start()

        stats = await TokenClient(api, settings=settings).get_user_token_stats(7)

        assert calls[0].url.path == "/api/v1/tokens/user/7"
        assert stats.remaining_tokens == 48800
        await api.close()

    @pytest.mark.asyncio
    async def test_poll_yields_fallback_on_error(self, settings):
        api = ApiClient(settings=settings)
        client = TokenClient(api, settings=settings)
        api.get = AsyncMock(side_effect=[ApiClientError(500, "down"), STATS])

        with patch("services.token_client.asyncio.sleep", new=AsyncMock()) as sleep:
            poll = client.poll_user_token_stats(7, interval=5)
            first = await poll.__anext__()
            second = await poll.__anext__()
            await poll.aclose()

        assert first.total_tokens_consumed == 0
        assert first.max_tokens_allowed == settings.default_token_quota
        assert first.remaining_tokens == settings.default_token_quota
        assert second.total_tokens_consumed == 1200
        sleep.assert_awaited_with(5)

    def test_fallback_stats(self, settings):
        stats = TokenClient(ApiClient(settings=settings), settings=settings).fallback_stats(9)
        assert stats.id_user == 9
        assert not stats.quota_exceeded
