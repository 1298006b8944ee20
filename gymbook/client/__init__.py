"""Client-side mirror of the authentication flow."""

from .api import GymApiClient
from .auth_session import AuthSession, LoggingNotifier, Notifier
from .token_store import (
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    FileTokenStore,
    InMemoryTokenStore,
    TokenStore,
)
from .tokens import get_token_payload, is_token_expired, should_refresh_token

__all__ = [
    "ACCESS_TOKEN_KEY",
    "REFRESH_TOKEN_KEY",
    "AuthSession",
    "FileTokenStore",
    "GymApiClient",
    "InMemoryTokenStore",
    "LoggingNotifier",
    "Notifier",
    "TokenStore",
    "get_token_payload",
    "is_token_expired",
    "should_refresh_token",
]
