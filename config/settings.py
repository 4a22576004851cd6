"""Pydantic Settings — typed configuration with .env auto-loading."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client configuration loaded from environment / .env file."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ── Service ──────────────────────────────────────────────
    debug: bool = False
    log_level: str = "INFO"

    # ── Pipeline API ─────────────────────────────────────────
    api_base_url: str = "http://localhost:8080"
    api_prefix: str = "/api/v1"
    chat_stream_path: str = "/chat/stream"
    chat_health_path: str = "/chat/health"
    conversations_path: str = "/conversations"
    tokens_path: str = "/tokens"
    auth_path: str = "/auth"
    columns_path: str = "/columns"

    # ── Timeouts / retry ─────────────────────────────────────
    request_timeout: float = 15.0  # seconds, REST collaborators
    stream_connect_timeout: float = 10.0
    stream_read_timeout: float | None = None  # None = wait for the pipeline indefinitely
    max_retries: int = 3  # REST only, the chat stream is never retried
    retry_base_delay: float = 0.5  # seconds, doubles each attempt

    # ── History / auxiliary ──────────────────────────────────
    conversation_history_limit: int = 20
    token_poll_interval: float = 30.0  # seconds
    default_token_quota: int = 50000

    # ── Helpers ───────────────────────────────────────────────

    @property
    def api_url(self) -> str:
        """Base URL with the API prefix, without trailing slash."""
        return f"{self.api_base_url.rstrip('/')}{self.api_prefix}"


@lru_cache
def get_settings() -> Settings:
    """Singleton accessor for client settings."""
    return Settings()
