"""Unit tests for authentication state and token validation."""

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from jiffy_agent.auth import SESSION_EXPIRED_MESSAGE, AuthManager
from jiffy_agent.config import AgentConfig
from jiffy_agent.errors import AuthError, AuthErrorCode

USER_BODY = {
    "user": {
        "id": "user-1",
        "email": "ada@example.com",
        "firstName": "Ada",
        "lastName": "Lovelace",
        "organizationId": "org-1",
    }
}


def users_app(seen_tokens: list, status: int = 200, body=None) -> web.Application:
    async def current_user(request: web.Request) -> web.Response:
        seen_tokens.append(request.headers.get("Authorization"))
        if body is not None:
            return web.Response(text=body, status=status, content_type="application/json")
        return web.json_response(USER_BODY, status=status)

    app = web.Application()
    app.router.add_get("/api/users/current", current_user)
    return app


def manager_for(server: TestServer, token: str | None = "stored-token") -> AuthManager:
    config = AgentConfig(api_base_url=str(server.make_url("/api")))
    return AuthManager(config, token=token)


class TestValidate:
    """Tests for validate() against the current-user endpoint."""

    @pytest.mark.asyncio
    async def test_valid_token(self):
        seen = []
        async with TestServer(users_app(seen)) as server:
            auth = manager_for(server)
            try:
                assert await auth.validate() is True
            finally:
                await auth.close()

        assert seen == ["Bearer stored-token"]
        assert auth.is_authenticated
        assert auth.user.display_name == "Ada Lovelace"
        assert auth.state.token == "stored-token"

    @pytest.mark.asyncio
    async def test_unauthorized_clears_token(self):
        seen = []
        async with TestServer(users_app(seen, status=401)) as server:
            auth = manager_for(server)
            try:
                assert await auth.validate() is False
            finally:
                await auth.close()

        assert auth.token is None
        assert not auth.is_authenticated
        assert auth.error == SESSION_EXPIRED_MESSAGE

    @pytest.mark.asyncio
    async def test_server_error_clears_token(self):
        seen = []
        async with TestServer(users_app(seen, status=500)) as server:
            auth = manager_for(server)
            try:
                assert await auth.validate() is False
            finally:
                await auth.close()

        assert auth.token is None

    @pytest.mark.asyncio
    async def test_without_token_makes_no_request(self):
        seen = []
        async with TestServer(users_app(seen)) as server:
            auth = manager_for(server, token=None)
            try:
                assert await auth.validate() is False
            finally:
                await auth.close()

        assert seen == []

    @pytest.mark.asyncio
    async def test_fetch_current_user_errors(self):
        seen = []
        async with TestServer(users_app(seen, status=503)) as server:
            auth = manager_for(server)
            try:
                with pytest.raises(AuthError) as exc_info:
                    await auth.fetch_current_user("t")
            finally:
                await auth.close()

        assert exc_info.value.code == AuthErrorCode.SERVER_ERROR
        assert exc_info.value.status == 503

    @pytest.mark.asyncio
    async def test_invalid_body(self):
        seen = []
        async with TestServer(users_app(seen, body='{"nope": true}')) as server:
            auth = manager_for(server)
            try:
                with pytest.raises(AuthError) as exc_info:
                    await auth.fetch_current_user("t")
            finally:
                await auth.close()

        assert exc_info.value.code == AuthErrorCode.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_auth_callback_validates(self):
        seen = []
        async with TestServer(users_app(seen)) as server:
            auth = manager_for(server, token=None)
            try:
                assert await auth.handle_auth_callback("fresh-token") is True
            finally:
                await auth.close()

        assert seen == ["Bearer fresh-token"]
        assert auth.is_authenticated


class TestListeners:
    """Tests for authenticated-flag change notifications."""

    def test_notified_on_change_only(self):
        auth = AuthManager(AgentConfig())
        changes = []
        auth.add_listener(changes.append)

        auth.authenticate("a")
        auth.authenticate("b")
        auth.logout()
        auth.logout()

        assert changes == [True, False]

    def test_deauthenticate_clears_token(self):
        auth = AuthManager(AgentConfig())
        changes = []
        auth.add_listener(changes.append)
        auth.authenticate("a")

        auth.deauthenticate()

        assert auth.token is None
        assert changes == [True, False]

    def test_failing_listener_does_not_block_others(self):
        auth = AuthManager(AgentConfig())
        changes = []

        def broken(_):
            raise RuntimeError("listener bug")

        auth.add_listener(broken)
        auth.add_listener(changes.append)

        auth.authenticate("a")

        assert changes == [True]
