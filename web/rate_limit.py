"""Shared rate limiter for the API routes."""

from slowapi import Limiter
from slowapi.util import get_remote_address

from gymbook.core.config.settings import RateLimitSettings

GENERAL_LIMIT_MESSAGE = "Too many requests from this IP, please try again after 15 minutes"

# Per-route limits and the messages returned when they trip
REGISTER_LIMIT = "3/hour"
REGISTER_MESSAGE = "Too many accounts created from this IP, please try again after an hour"
LOGIN_LIMIT = "5 per 30 minutes"
LOGIN_MESSAGE = "Too many login attempts. Please try again after 30 minutes or reset your password"
REFRESH_LIMIT = "30 per 15 minutes"
REFRESH_MESSAGE = "Too many token refresh attempts. Please try again later"
PASSWORD_RESET_LIMIT = "3/hour"
PASSWORD_RESET_MESSAGE = "Too many password reset attempts. Please try again after an hour"
EMAIL_VERIFICATION_LIMIT = "5/hour"
EMAIL_VERIFICATION_MESSAGE = (
    "Too many email verification attempts. Please try again after an hour"
)
PASSWORD_CHANGE_LIMIT = "3/hour"
PASSWORD_CHANGE_MESSAGE = "Too many password change attempts. Please try again after an hour"
PROFILE_UPDATE_LIMIT = "10/hour"
ACCOUNT_MESSAGE = "Too many account changes from this IP, please try again after an hour"

_general_limit = RateLimitSettings(window_ms=15 * 60 * 1000, max_requests=100).as_limit_string()


def general_limit() -> str:
    """Default limit applied to every route without its own."""
    return _general_limit


limiter = Limiter(key_func=get_remote_address, default_limits=[general_limit])


def configure_limiter(settings: RateLimitSettings) -> Limiter:
    """
    Apply configured thresholds to the shared limiter.

    Args:
        settings: Rate-limit section of the application settings

    Returns:
        The shared limiter
    """
    global _general_limit
    _general_limit = settings.as_limit_string()
    limiter.enabled = settings.enabled
    return limiter
