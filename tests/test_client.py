"""Tests for the API client, token helpers and client session state."""

import json
import time
from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import jwt
import pytest

from gymbook.client import AuthSession, FileTokenStore, GymApiClient, InMemoryTokenStore
from gymbook.client.token_store import ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY
from gymbook.client.tokens import get_token_payload, is_token_expired, should_refresh_token
from gymbook.core.exceptions import ApiRequestError


def make_jwt(expires_in: float) -> str:
    return jwt.encode(
        {"sub": "user-1", "exp": int(time.time() + expires_in)}, "client-test-secret"
    )


class FakeResponse:
    """Async context manager standing in for an aiohttp response."""

    def __init__(self, status=200, payload=None, reason="OK"):
        self.status = status
        self.reason = reason
        self._payload = payload

    async def json(self, content_type=None):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


@pytest.fixture
def tokens():
    return InMemoryTokenStore()


@pytest.fixture
def api(tokens):
    session = MagicMock()
    return GymApiClient(base_url="http://api.test/api/v1/", tokens=tokens, session=session)


class TestTokenStores:
    def test_in_memory(self, tokens):
        tokens.set_tokens("a", "r")
        assert (tokens.get_access_token(), tokens.get_refresh_token()) == ("a", "r")
        tokens.clear_tokens()
        assert tokens.get_access_token() is None

    def test_file_store_preserves_other_keys(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text(json.dumps({"theme": "dark"}))
        store = FileTokenStore(path)

        store.set_tokens("a", "r")
        data = json.loads(path.read_text())
        assert data == {"theme": "dark", ACCESS_TOKEN_KEY: "a", REFRESH_TOKEN_KEY: "r"}
        assert path.stat().st_mode & 0o777 == 0o600

        store.clear_tokens()
        assert json.loads(path.read_text()) == {"theme": "dark"}

    def test_corrupt_file_reads_empty(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text("{not json")
        assert FileTokenStore(path).get_access_token() is None

    def test_missing_file(self, tmp_path):
        assert FileTokenStore(tmp_path / "none.json").get_refresh_token() is None


class TestTokenInspection:
    def test_payload(self):
        assert get_token_payload(make_jwt(60))["sub"] == "user-1"

    def test_garbage_payload(self):
        assert get_token_payload("not-a-jwt") is None
        assert get_token_payload(None) is None

    def test_expiry(self):
        assert is_token_expired(make_jwt(60)) is False
        assert is_token_expired(make_jwt(-1)) is True
        assert is_token_expired("garbage") is True

    def test_refresh_window(self):
        assert should_refresh_token(make_jwt(4 * 60)) is True
        assert should_refresh_token(make_jwt(10 * 60)) is False
        assert should_refresh_token(None) is True


class TestApiClient:
    """Tests for GymApiClient request handling."""

    @pytest.mark.asyncio
    async def test_send_attaches_bearer(self, api, tokens):
        tokens.set_tokens("access-1", "refresh-1")
        api._http_session.request.return_value = FakeResponse(
            payload={"success": True, "data": {"id": "user-1"}}
        )

        assert await api.get_profile() == {"id": "user-1"}
        method, url = api._http_session.request.call_args.args
        assert (method, url) == ("GET", "http://api.test/api/v1/auth/profile")
        assert api._http_session.request.call_args.kwargs["headers"] == {
            "Authorization": "Bearer access-1"
        }

    @pytest.mark.asyncio
    async def test_error_status_raises_with_server_message(self, api):
        api._http_session.request.return_value = FakeResponse(
            status=409, payload={"success": False, "message": "User exists"}, reason="Conflict"
        )
        with pytest.raises(ApiRequestError) as exc_info:
            await api.register("a@gymbook.io", "x", "A")
        assert exc_info.value.status == 409
        assert exc_info.value.message == "User exists"

    @pytest.mark.asyncio
    async def test_non_json_error_uses_reason(self, api):
        api._http_session.request.return_value = FakeResponse(
            status=502, payload=ValueError("no json"), reason="Bad Gateway"
        )
        with pytest.raises(ApiRequestError, match="Bad Gateway"):
            await api.forgot_password("a@gymbook.io")

    @pytest.mark.asyncio
    async def test_network_error(self, api):
        api._http_session.request.side_effect = aiohttp.ClientConnectionError("refused")
        with pytest.raises(ApiRequestError) as exc_info:
            await api.login("a@gymbook.io", "x")
        assert exc_info.value.status == 0
        assert exc_info.value.recoverable is True

    @pytest.mark.asyncio
    async def test_refresh_then_retry(self, api, tokens):
        tokens.set_tokens("stale", "refresh-1")
        send = AsyncMock(
            side_effect=[
                ApiRequestError(401, "Token expired"),
                {"success": True, "data": {"accessToken": "fresh", "refreshToken": "refresh-2"}},
                {"success": True, "data": {"id": "user-1"}},
            ]
        )

        with patch.object(api, "_send", send):
            assert await api.get_profile() == {"id": "user-1"}

        assert send.call_args_list[1].args == (
            "POST",
            "/auth/refresh",
            {"refreshToken": "refresh-1"},
        )
        assert send.call_args_list[2].args[3] == "fresh"
        assert tokens.get_refresh_token() == "refresh-2"

    @pytest.mark.asyncio
    async def test_refresh_failure_expires_session(self, api, tokens):
        tokens.set_tokens("stale", "refresh-1")
        expired = MagicMock()
        api.on_session_expired = expired
        send = AsyncMock(
            side_effect=[ApiRequestError(401, "Token expired"), ApiRequestError(401, "Revoked")]
        )

        with patch.object(api, "_send", send):
            with pytest.raises(ApiRequestError):
                await api.get_profile()

        assert tokens.get_access_token() is None
        expired.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_no_refresh_token(self, api, tokens):
        send = AsyncMock(side_effect=ApiRequestError(401, "No token provided"))
        with patch.object(api, "_send", send):
            with pytest.raises(ApiRequestError, match="Session expired"):
                await api.get_profile()
        assert send.await_count == 1

    @pytest.mark.asyncio
    async def test_token_refreshed_by_another_caller(self, api, tokens):
        """Test a waiter reuses the token another caller already obtained."""
        tokens.set_tokens("fresh", "refresh-2")
        send = AsyncMock()
        with patch.object(api, "_send", send):
            assert await api._refresh_access_token("stale") == "fresh"
        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_401_errors_not_retried(self, api, tokens):
        tokens.set_tokens("access-1", "refresh-1")
        send = AsyncMock(side_effect=ApiRequestError(403, "Access denied"))
        with patch.object(api, "_send", send):
            with pytest.raises(ApiRequestError):
                await api.update_profile(full_name="Jane")
        assert send.await_count == 1


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def navigate():
    return MagicMock()


@pytest.fixture
def session_api(tokens):
    api = MagicMock()
    api.tokens = tokens
    for name in ("login", "register", "logout", "forgot_password", "get_profile"):
        setattr(api, name, AsyncMock())
    return api


@pytest.fixture
def auth_session(session_api, notifier, navigate):
    return AuthSession(session_api, notifier=notifier, navigate=navigate)


LOGIN_DATA = {
    "user": {"id": "user-1", "email": "member@gymbook.io", "full_name": "Jane Member"},
    "accessToken": "access-1",
    "refreshToken": "refresh-1",
    "expiresIn": "15m",
}


class TestAuthSession:
    """Tests for AuthSession."""

    @pytest.mark.asyncio
    async def test_initialize_without_token(self, auth_session, session_api):
        assert auth_session.is_loading is True
        await auth_session.initialize()

        assert auth_session.is_loading is False
        assert auth_session.is_authenticated is False
        session_api.get_profile.assert_not_awaited()
        assert auth_session.protected_redirect() == "/login"

    @pytest.mark.asyncio
    async def test_initialize_with_expired_token(self, auth_session, session_api, tokens):
        tokens.set_tokens(make_jwt(-60), "refresh-1")
        await auth_session.initialize()

        session_api.get_profile.assert_not_awaited()
        assert tokens.get_refresh_token() is None

    @pytest.mark.asyncio
    async def test_initialize_restores_user(self, auth_session, session_api, tokens):
        tokens.set_tokens(make_jwt(600), "refresh-1")
        session_api.get_profile.return_value = LOGIN_DATA["user"]

        await auth_session.initialize()
        assert auth_session.user == LOGIN_DATA["user"]
        assert auth_session.guest_redirect() == "/dashboard"

    @pytest.mark.asyncio
    async def test_initialize_profile_failure_clears_tokens(
        self, auth_session, session_api, tokens
    ):
        tokens.set_tokens(make_jwt(600), "refresh-1")
        session_api.get_profile.side_effect = ApiRequestError(401, "Invalid token")

        await auth_session.initialize()
        assert auth_session.user is None
        assert tokens.get_access_token() is None

    @pytest.mark.asyncio
    async def test_login(self, auth_session, session_api, tokens, notifier, navigate):
        session_api.login.return_value = LOGIN_DATA

        await auth_session.login("member@gymbook.io", "secret")

        assert tokens.get_access_token() == "access-1"
        notifier.success.assert_called_once_with("Welcome back!", "Logged in as Jane")
        navigate.assert_called_once_with("/dashboard")

    @pytest.mark.asyncio
    async def test_login_failure_default_message(self, auth_session, session_api, notifier):
        session_api.login.side_effect = ApiRequestError(0, "Network error: refused")

        with pytest.raises(ApiRequestError):
            await auth_session.login("member@gymbook.io", "secret")
        notifier.error.assert_called_once_with(
            "Login Failed", "Login failed. Please check your credentials."
        )
        assert auth_session.is_loading is False

    @pytest.mark.asyncio
    async def test_register(self, auth_session, session_api, notifier):
        session_api.register.return_value = LOGIN_DATA

        await auth_session.register("member@gymbook.io", "secret", "Jane Member")
        notifier.success.assert_called_once_with("Account Created!", "Welcome to GymBook!")

    @pytest.mark.asyncio
    async def test_register_failure_uses_server_message(self, auth_session, session_api, notifier):
        session_api.register.side_effect = ApiRequestError(409, "User with this email already exists")

        with pytest.raises(ApiRequestError):
            await auth_session.register("member@gymbook.io", "secret", "Jane")
        notifier.error.assert_called_once_with(
            "Registration Failed", "User with this email already exists"
        )

    @pytest.mark.asyncio
    async def test_logout_clears_even_on_error(
        self, auth_session, session_api, tokens, notifier, navigate
    ):
        tokens.set_tokens("access-1", "refresh-1")
        auth_session.set_user(LOGIN_DATA["user"])
        session_api.logout.side_effect = ApiRequestError(500, "boom")

        await auth_session.logout()

        assert tokens.get_access_token() is None
        assert auth_session.user is None
        notifier.success.assert_called_once_with("Logged out successfully")
        navigate.assert_called_once_with("/login")

    @pytest.mark.asyncio
    async def test_forgot_password(self, auth_session, notifier):
        await auth_session.forgot_password("member@gymbook.io")
        notifier.success.assert_called_once_with(
            "Reset Email Sent", "Check your inbox for password reset instructions."
        )

    def test_session_expiry_callback(self, auth_session, session_api, navigate):
        auth_session.set_user(LOGIN_DATA["user"])

        session_api.on_session_expired()

        assert auth_session.user is None
        navigate.assert_called_once_with("/login")
