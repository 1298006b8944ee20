"""Client-side session state: current user, token lifecycle, notifications and redirects."""

from typing import Any, Callable, Dict, Optional, Protocol

from loguru import logger

from gymbook.client.api import GymApiClient
from gymbook.client.tokens import is_token_expired
from gymbook.core.exceptions import ApiRequestError

LOGIN_PATH = "/login"
DASHBOARD_PATH = "/dashboard"


class Notifier(Protocol):
    """User-facing notifications (toasts in a browser)."""

    def success(self, title: str, description: Optional[str] = None) -> None:
        ...

    def error(self, title: str, description: Optional[str] = None) -> None:
        ...


class LoggingNotifier:
    """Notifier that writes to the application log."""

    def success(self, title: str, description: Optional[str] = None) -> None:
        logger.info(f"{title}: {description}" if description else title)

    def error(self, title: str, description: Optional[str] = None) -> None:
        logger.warning(f"{title}: {description}" if description else title)


def _error_message(error: Exception, fallback: str) -> str:
    if isinstance(error, ApiRequestError) and error.status and error.message:
        return error.message
    return fallback


def _first_name(user: Dict[str, Any]) -> str:
    full_name = (user.get("full_name") or "").strip()
    return full_name.split()[0] if full_name else user.get("email", "")


class AuthSession:
    """
    Mirrors the signed-in state of one client.

    ``is_loading`` stays True until :meth:`initialize` settles, so route
    guards wait instead of redirecting early.
    """

    def __init__(
        self,
        api: GymApiClient,
        notifier: Optional[Notifier] = None,
        navigate: Optional[Callable[[str], None]] = None,
    ):
        """
        Initialize auth session.

        Args:
            api: API client; its token store backs this session
            notifier: Notification sink (logging by default)
            navigate: Called with a path when the session redirects
        """
        self.api = api
        self.notifier: Notifier = notifier or LoggingNotifier()
        self._navigate = navigate
        self.user: Optional[Dict[str, Any]] = None
        self.is_loading = True
        self.api.on_session_expired = self._on_session_expired

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def navigate(self, path: str) -> None:
        if self._navigate is not None:
            self._navigate(path)
        else:
            logger.debug(f"Navigate to {path}")

    def set_user(self, user: Optional[Dict[str, Any]]) -> None:
        self.user = user

    def _on_session_expired(self) -> None:
        self.user = None
        self.navigate(LOGIN_PATH)

    @staticmethod
    def _extract_user(data: Dict[str, Any]) -> Dict[str, Any]:
        return data.get("user") or data

    async def initialize(self) -> None:
        """
        Restore the session from stored tokens.

        A missing or expired access token clears the store without a network
        call. Otherwise the profile is fetched; any failure clears the tokens.
        """
        token = self.api.tokens.get_access_token()
        if not token or is_token_expired(token):
            self.api.tokens.clear_tokens()
            self.is_loading = False
            return

        try:
            self.user = self._extract_user(await self.api.get_profile())
        except ApiRequestError as e:
            logger.warning(f"Auth check failed: {e.message}")
            self.api.tokens.clear_tokens()
        finally:
            self.is_loading = False

    def _start_session(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self.api.tokens.set_tokens(data["accessToken"], data["refreshToken"])
        self.user = data["user"]
        return self.user

    async def login(self, email: str, password: str) -> Dict[str, Any]:
        """
        Sign in, store the tokens and go to the dashboard.

        Raises:
            ApiRequestError: Re-raised after an error notification
        """
        self.is_loading = True
        try:
            user = self._start_session(await self.api.login(email, password))
        except ApiRequestError as e:
            self.notifier.error(
                "Login Failed",
                _error_message(e, "Login failed. Please check your credentials."),
            )
            raise
        finally:
            self.is_loading = False

        self.notifier.success("Welcome back!", f"Logged in as {_first_name(user)}")
        self.navigate(DASHBOARD_PATH)
        return user

    async def register(
        self, email: str, password: str, full_name: str, phone: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Create an account, store the tokens and go to the dashboard.

        Raises:
            ApiRequestError: Re-raised after an error notification
        """
        self.is_loading = True
        try:
            user = self._start_session(
                await self.api.register(email, password, full_name, phone)
            )
        except ApiRequestError as e:
            self.notifier.error(
                "Registration Failed",
                _error_message(e, "Registration failed. Please try again."),
            )
            raise
        finally:
            self.is_loading = False

        self.notifier.success("Account Created!", "Welcome to GymBook!")
        self.navigate(DASHBOARD_PATH)
        return user

    async def logout(self) -> None:
        """Tell the server, then always drop local state and go to the login page."""
        try:
            await self.api.logout()
        except ApiRequestError as e:
            logger.warning(f"Logout error: {e.message}")
        finally:
            self.api.tokens.clear_tokens()
            self.user = None
            self.notifier.success("Logged out successfully")
            self.navigate(LOGIN_PATH)

    async def forgot_password(self, email: str) -> None:
        try:
            await self.api.forgot_password(email)
        except ApiRequestError as e:
            self.notifier.error("Request Failed", _error_message(e, "Failed to send reset email."))
            raise
        self.notifier.success(
            "Reset Email Sent", "Check your inbox for password reset instructions."
        )

    async def refresh_user(self) -> None:
        """Reload the profile. Failures are logged and the current user is kept."""
        try:
            self.user = self._extract_user(await self.api.get_profile())
        except ApiRequestError as e:
            logger.warning(f"Failed to refresh user: {e.message}")

    def protected_redirect(self) -> Optional[str]:
        """Where a protected page should send the visitor, if anywhere."""
        if not self.is_loading and not self.is_authenticated:
            return LOGIN_PATH
        return None

    def guest_redirect(self) -> Optional[str]:
        """Where a guest-only page (login, register) should send a signed-in user."""
        if not self.is_loading and self.is_authenticated:
            return DASHBOARD_PATH
        return None
