"""Request dependencies: pool and service lookup, bearer authentication, role guards."""

from typing import Awaitable, Callable, Optional

from fastapi import Depends, Request
from loguru import logger

from gymbook.core.exceptions import (
    AuthenticationError,
    GymBookError,
    InsufficientPermissionsError,
)
from gymbook.models.db_connection import DatabasePool
from gymbook.repositories import User
from gymbook.services.auth_service import AuthService

NO_TOKEN_MESSAGE = "No token provided. Please include Authorization header with Bearer token"
INVALID_FORMAT_MESSAGE = "Invalid token format"
EMAIL_VERIFICATION_REQUIRED = (
    "Email verification required. Please verify your email address to access this resource"
)


def get_db(request: Request) -> DatabasePool:
    return request.app.state.db


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def extract_bearer_token(request: Request) -> Optional[str]:
    """
    Extract the bearer token from the Authorization header.

    Args:
        request: FastAPI request object

    Returns:
        Raw token string, or None if the header is missing or not a Bearer header

    Raises:
        AuthenticationError: If the token is literally ``null`` or ``undefined``
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None

    token = auth_header[len("Bearer "):].strip()
    if not token:
        return None
    if token in ("null", "undefined"):
        raise AuthenticationError(INVALID_FORMAT_MESSAGE)
    return token


async def get_current_user(
    request: Request, auth: AuthService = Depends(get_auth_service)
) -> User:
    """
    Resolve the bearer token to an active user and attach it to ``request.state``.

    Raises:
        AuthenticationError: Missing, malformed, expired or revoked-user token
    """
    token = extract_bearer_token(request)
    if token is None:
        raise AuthenticationError(NO_TOKEN_MESSAGE)

    user = await auth.authenticate(token)
    request.state.user = user
    return user


async def optional_user(
    request: Request, auth: AuthService = Depends(get_auth_service)
) -> Optional[User]:
    """Like get_current_user, but any failure yields an anonymous request."""
    try:
        token = extract_bearer_token(request)
        if token is None:
            return None
        user = await auth.authenticate(token)
    except GymBookError as e:
        logger.debug(f"Ignoring optional authentication failure: {e.message}")
        return None
    request.state.user = user
    return user


def require_roles(*roles: str) -> Callable[..., Awaitable[User]]:
    """
    Build a dependency that admits only users holding one of ``roles``.

    Example:
        @router.get("/admin", dependencies=[Depends(require_roles("admin"))])
    """

    async def check_role(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise InsufficientPermissionsError(
                f"Access denied. Required role: {' or '.join(roles)}. Your role: {user.role}"
            )
        return user

    return check_role


admin_only = require_roles("admin")
trainer_or_admin = require_roles("trainer", "admin")


async def require_email_verified(user: User = Depends(get_current_user)) -> User:
    if not user.email_verified:
        raise InsufficientPermissionsError(EMAIL_VERIFICATION_REQUIRED)
    return user
