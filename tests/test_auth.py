"""Tests for services/auth.py — the caller identity."""

from __future__ import annotations

import json

import httpx
import pytest

from errors.exceptions import MissingCallerIdentityError
from models.auth import User
from services.api_client import ApiClient
from services.auth import AuthSession


def _api(settings, response: httpx.Response, calls: list) -> ApiClient:
    def handler(request):
        calls.append(request)
        return response

    return ApiClient(settings=settings, transport=httpx.MockTransport(handler))


class TestAuthSession:
    def test_require_user_id(self, settings):
        session = AuthSession(settings=settings, user=User(id=3, login="bob"))
        assert session.require_user_id() == 3
        assert session.is_authenticated

    def test_missing_identity(self, settings):
        with pytest.raises(MissingCallerIdentityError):
            AuthSession(settings=settings).require_user_id()

    @pytest.mark.asyncio
    async def test_login_success(self, settings):
        calls = []
        api = _api(
            settings,
            httpx.Response(
                200,
                json={"success": True, "user": {"id": 7, "login": "alice"}, "token": "jwt"},
            ),
            calls,
        )
        await api.start()
        session = AuthSession(api=api, settings=settings)

        response = await session.login("alice", "secret")

        assert response.success
        assert session.require_user_id() == 7
        assert calls[0].url.path == "/api/v1/auth/login"
        assert json.loads(calls[0].read()) == {"login": "alice", "password": "secret"}
        assert api._http.headers["authorization"] == "Bearer jwt"
        await api.close()

    @pytest.mark.asyncio
    async def test_login_refused(self, settings):
        api = _api(settings, httpx.Response(200, json={"success": False, "message": "Identifiants invalides"}), [])
        await api.start()
        session = AuthSession(api=api, settings=settings)

        response = await session.login("alice", "bad")

        assert not response.success
        assert session.current_user is None
        await api.close()

    @pytest.mark.asyncio
    async def test_login_without_api(self, settings):
        with pytest.raises(RuntimeError):
            await AuthSession(settings=settings).login("a", "b")

    def test_logout(self, settings):
        session = AuthSession(settings=settings, user=User(id=3, login="bob"))
        session.logout()
        assert not session.is_authenticated
        with pytest.raises(MissingCallerIdentityError):
            session.require_user_id()
