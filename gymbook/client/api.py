"""HTTP client for the GymBook API with transparent access-token refresh."""

import asyncio
from typing import Any, Callable, Dict, Optional

import aiohttp
from loguru import logger

from gymbook.client.token_store import InMemoryTokenStore, TokenStore
from gymbook.core.exceptions import ApiRequestError

DEFAULT_BASE_URL = "http://localhost:3000/api/v1"
DEFAULT_TIMEOUT = 10
REFRESH_PATH = "/auth/refresh"
SESSION_EXPIRED_MESSAGE = "Session expired. Please log in again"


class GymApiClient:
    """
    Client for the GymBook REST API.

    Attaches the stored bearer token to every request. A 401 triggers one
    token refresh, shared by all callers that fail at the same time, and the
    original request is retried once.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        tokens: Optional[TokenStore] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
        on_session_expired: Optional[Callable[[], None]] = None,
    ):
        """
        Initialize API client.

        Args:
            base_url: API base including the version prefix
            tokens: Token store (in-memory by default)
            timeout: Total request timeout in seconds
            session: Existing aiohttp session; the client will not close it
            on_session_expired: Called after a failed refresh cleared the tokens
        """
        self.base_url = base_url.rstrip("/")
        self.tokens: TokenStore = tokens or InMemoryTokenStore()
        self.timeout = timeout
        self.on_session_expired = on_session_expired
        self._http_session = session
        self._owns_session = session is None
        self._refresh_lock = asyncio.Lock()

    async def __aenter__(self) -> "GymApiClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def _session(self) -> aiohttp.ClientSession:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession(
                headers={"Content-Type": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
        return self._http_session

    async def close(self) -> None:
        """Close HTTP session."""
        if self._http_session is not None and self._owns_session:
            await self._http_session.close()
        self._http_session = None

    async def _send(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        token: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            async with self._session.request(
                method, f"{self.base_url}{path}", json=json, headers=headers
            ) as response:
                try:
                    payload = await response.json(content_type=None)
                except ValueError:
                    payload = None
                if not isinstance(payload, dict):
                    payload = {}

                if response.status >= 400:
                    message = payload.get("message") or response.reason or "Request failed"
                    raise ApiRequestError(response.status, message, payload)
                return payload
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"{method} {path} failed: {e!r}")
            raise ApiRequestError(0, f"Network error: {e}") from e

    async def request(
        self, method: str, path: str, json: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Send an authenticated request and return the decoded response body.

        Raises:
            ApiRequestError: Non-2xx response, network failure, or failed refresh
        """
        token = self.tokens.get_access_token()
        try:
            return await self._send(method, path, json, token)
        except ApiRequestError as e:
            if e.status != 401 or path == REFRESH_PATH:
                raise

        new_token = await self._refresh_access_token(token)
        return await self._send(method, path, json, new_token)

    async def _refresh_access_token(self, failed_token: Optional[str]) -> str:
        async with self._refresh_lock:
            current = self.tokens.get_access_token()
            if current and current != failed_token:
                # Another caller refreshed while this one waited
                return current

            refresh_token = self.tokens.get_refresh_token()
            if not refresh_token:
                self._expire_session()
                raise ApiRequestError(401, SESSION_EXPIRED_MESSAGE)

            try:
                body = await self._send("POST", REFRESH_PATH, {"refreshToken": refresh_token})
            except ApiRequestError:
                self._expire_session()
                raise

            data = body.get("data") or body
            self.tokens.set_tokens(data["accessToken"], data["refreshToken"])
            logger.debug("Access token refreshed")
            return data["accessToken"]

    def _expire_session(self) -> None:
        self.tokens.clear_tokens()
        if self.on_session_expired is not None:
            self.on_session_expired()

    @staticmethod
    def _data(body: Dict[str, Any]) -> Any:
        return body.get("data", body)

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        body = await self._send("POST", "/auth/login", {"email": email, "password": password})
        return self._data(body)

    async def register(
        self, email: str, password: str, full_name: str, phone: Optional[str] = None
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"email": email, "password": password, "full_name": full_name}
        if phone:
            payload["phone"] = phone
        body = await self._send("POST", "/auth/register", payload)
        return self._data(body)

    async def logout(self) -> Dict[str, Any]:
        return await self.request("POST", "/auth/logout")

    async def forgot_password(self, email: str) -> Dict[str, Any]:
        return await self._send("POST", "/auth/forgot-password", {"email": email})

    async def reset_password(self, token: str, new_password: str) -> Dict[str, Any]:
        return await self._send(
            "POST", "/auth/reset-password", {"token": token, "newPassword": new_password}
        )

    async def get_profile(self) -> Dict[str, Any]:
        body = await self.request("GET", "/auth/profile")
        return self._data(body)

    async def update_profile(self, **fields: Any) -> Dict[str, Any]:
        body = await self.request("PUT", "/auth/profile", fields)
        return self._data(body)
