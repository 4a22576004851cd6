"""HTTP client for the pipeline's REST endpoints.

Wraps ``httpx.AsyncClient`` with:
- base URL + API prefix construction
- optional Bearer token auth
- retry with exponential backoff (network / 5xx errors)
- request timing logs

Used by the history, auth, token-stats and column-discovery collaborators.
The chat stream does not go through this client: it is never retried.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from config.settings import Settings, get_settings
from errors.exceptions import ApiClientError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------
_client: ApiClient | None = None


class ApiClient:
    """Async REST client with retry."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._base_url = settings.api_url
        self._timeout = settings.request_timeout
        self._max_retries = max(1, settings.max_retries)
        self._retry_base_delay = settings.retry_base_delay
        self._transport = transport
        self._access_token = ""
        self._http: httpx.AsyncClient | None = None

    # -- lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        """Create the underlying ``httpx.AsyncClient`` connection pool."""
        if self._http is not None:
            return
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._timeout),
            headers=self._auth_headers(),
            transport=self._transport,
        )
        logger.info("ApiClient started — base_url=%s", self._base_url)

    async def close(self) -> None:
        """Gracefully close the connection pool."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None
            logger.info("ApiClient closed")

    # -- public API ----------------------------------------------------------

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Send a GET request with retry.

        Raises :class:`ApiClientError` on non-retryable errors (4xx) and once
        retries are exhausted on 5xx.
        """
        return await self._request_with_retry("GET", path, params=params)

    async def post(self, path: str, json_body: dict[str, Any] | None = None) -> Any:
        """Send a POST request with retry."""
        return await self._request_with_retry("POST", path, json_body=json_body)

    async def delete(self, path: str) -> Any:
        """Send a DELETE request with retry."""
        return await self._request_with_retry("DELETE", path)

    # -- token management ----------------------------------------------------

    def set_access_token(self, access_token: str | None) -> None:
        """Hot-swap the Bearer token without recreating the client."""
        self._access_token = access_token or ""
        if self._http is not None:
            self._http.headers.pop("Authorization", None)
            self._http.headers.update(self._auth_headers())

    # -- retry logic ---------------------------------------------------------

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> Any:
        """Execute a pipeline REST call with exponential-backoff retry.

        Retries on network errors (``httpx.TransportError``) and 5xx.
        A 4xx from the pipeline (bad credentials, unknown session id, missing
        ``userId``) is raised at once as :class:`ApiClientError`.  The chat
        stream never goes through this path; it is not retried at all.
        """
        client = self._ensure_started()
        last_exc: Exception | None = None

        for attempt in range(1, self._max_retries + 1):
            t0 = time.monotonic()
            try:
                response = await client.request(method, path, params=params, json=json_body)

                elapsed_ms = (time.monotonic() - t0) * 1000
                logger.info(
                    "%s %s → %d (%.0fms)",
                    method, path, response.status_code, elapsed_ms,
                )

                if 400 <= response.status_code < 500:
                    detail = response.text[:500] if response.text else f"HTTP {response.status_code}"
                    raise ApiClientError(
                        status_code=response.status_code,
                        detail=detail,
                        url=str(response.url),
                    )

                if response.status_code >= 500:
                    last_exc = ApiClientError(
                        status_code=response.status_code,
                        detail=response.text[:200] if response.text else "",
                        url=str(response.url),
                    )
                    if attempt < self._max_retries:
                        delay = self._retry_base_delay * (2 ** (attempt - 1))
                        logger.warning(
                            "%s %s → 5xx, retry %d/%d in %.1fs",
                            method, path, attempt, self._max_retries, delay,
                        )
                        await asyncio.sleep(delay)
                        continue
                    raise last_exc

                if not response.text:
                    return {}
                return response.json()

            except httpx.TransportError as exc:
                elapsed_ms = (time.monotonic() - t0) * 1000
                last_exc = exc
                logger.warning(
                    "%s %s → network error (%.0fms): %s [attempt %d/%d]",
                    method, path, elapsed_ms, exc, attempt, self._max_retries,
                )
                if attempt < self._max_retries:
                    delay = self._retry_base_delay * (2 ** (attempt - 1))
                    await asyncio.sleep(delay)
                    continue

        # Exhausted all retries
        raise last_exc  # type: ignore[misc]

    # -- internals -----------------------------------------------------------

    def _auth_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        return headers

    def _ensure_started(self) -> httpx.AsyncClient:
        if self._http is None:
            raise RuntimeError("ApiClient not started — call await client.start() first")
        return self._http


# ---------------------------------------------------------------------------
# Singleton accessor
# ---------------------------------------------------------------------------

def get_api_client() -> ApiClient:
    """Return the module-level ApiClient singleton (create if needed)."""
    global _client
    if _client is None:
        _client = ApiClient()
    return _client
