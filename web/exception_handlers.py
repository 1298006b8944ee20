"""Exception handlers that render every request error as the JSON error envelope."""

from typing import Any, Dict, List

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException

from gymbook.core.exceptions import AccountLockedError, ApiError, AuthenticationError
from gymbook.middleware.error_handler import error_response
from web.rate_limit import GENERAL_LIMIT_MESSAGE

_REDACTED_FIELDS = frozenset({"password", "newPassword", "currentPassword", "confirmPassword"})


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Render an ApiError (and subclasses) with its status code."""
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__}: {exc.message} ({request.url.path})")
    else:
        logger.info(f"{exc.__class__.__name__}: {exc.message} ({request.url.path})")

    headers: Dict[str, str] = {}
    if isinstance(exc, AuthenticationError):
        headers["WWW-Authenticate"] = "Bearer"
    if isinstance(exc, AccountLockedError) and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    return error_response(exc.message, exc.status_code, exc.errors, headers=headers or None)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Convert Starlette HTTP exceptions; unknown routes answer ``Cannot <METHOD> <path>``."""
    if exc.status_code == 404 and exc.detail in (None, "Not Found"):
        message = f"Cannot {request.method} {request.url.path}"
    else:
        message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    headers = getattr(exc, "headers", None)
    return error_response(message, exc.status_code, headers=headers)


def _field_name(loc: Any) -> str:
    parts = [str(part) for part in loc if part not in ("body", "query", "path")]
    if not loc:
        return "body"
    return ".".join(parts) or str(loc[0])


def _clean_message(message: str) -> str:
    prefix = "Value error, "
    return message[len(prefix):] if message.startswith(prefix) else message


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert request validation errors to 400 with a field list; password values are redacted."""
    errors: List[Dict[str, Any]] = []
    for error in exc.errors():
        field = _field_name(error.get("loc", ()))
        entry: Dict[str, Any] = {"field": field, "message": _clean_message(error["msg"])}
        if "input" in error and not isinstance(error["input"], dict):
            entry["value"] = "[REDACTED]" if field in _REDACTED_FIELDS else error["input"]
        errors.append(entry)
    return error_response("Validation failed", 400, errors)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 with the limit's own message, or the general one."""
    limit = getattr(exc, "limit", None)
    message = getattr(limit, "error_message", None) or GENERAL_LIMIT_MESSAGE
    client_host = request.client.host if request.client else "unknown"
    logger.warning(f"Rate limit exceeded for {client_host} on {request.url.path}")
    return error_response(message, 429)

