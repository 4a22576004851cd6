"""Auth session — the current caller identity.

The orchestrator only needs :meth:`AuthSession.require_user_id`; login and
logout talk to the auth endpoint and keep the user in memory.
"""

from __future__ import annotations

import logging

from config.settings import Settings, get_settings
from errors.exceptions import MissingCallerIdentityError
from models.auth import LoginRequest, LoginResponse, User
from services.api_client import ApiClient

logger = logging.getLogger(__name__)


class AuthSession:
    """Holds the authenticated user for the lifetime of the client."""

    def __init__(
        self,
        api: ApiClient | None = None,
        settings: Settings | None = None,
        user: User | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._api = api
        self._login_path = f"{settings.auth_path}/login"
        self._user = user

    @property
    def current_user(self) -> User | None:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    def require_user_id(self) -> int:
        """Return the caller id or raise :class:`MissingCallerIdentityError`."""
        if self._user is None:
            raise MissingCallerIdentityError()
        return self._user.id

    async def login(self, login: str, password: str) -> LoginResponse:
        """Authenticate against the auth endpoint.

        On success the user becomes current and the returned token, if any,
        is installed on the REST client.
        """
        if self._api is None:
            raise RuntimeError("AuthSession has no ApiClient — cannot log in")
        data = await self._api.post(
            self._login_path,
            json_body=LoginRequest(login=login, password=password).model_dump(by_alias=True),
        )
        response = LoginResponse.model_validate(data)
        if response.success and response.user is not None:
            self._user = response.user
            self._api.set_access_token(response.token)
            logger.info("Logged in as %s (id=%d)", response.user.login, response.user.id)
        else:
            logger.warning("Login refused for %s: %s", login, response.message)
        return response

    def logout(self) -> None:
        if self._user is not None:
            logger.info("Logged out %s", self._user.login)
        self._user = None
        if self._api is not None:
            self._api.set_access_token(None)
