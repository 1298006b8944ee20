"""Global error handling middleware for the GymBook API."""

import re
import traceback
from typing import Any, Callable, Dict, List, Optional, cast

import asyncpg
from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from gymbook.core.exceptions import ApiError, GymBookError, PoolExhaustedError

GENERIC_ERROR_MESSAGE = "Something went wrong"

_DUPLICATE_KEY = re.compile(r"Key \(([^)]+)\)=\(([^)]+)\)")


def error_response(
    message: str,
    status_code: int,
    errors: Optional[List[Dict[str, Any]]] = None,
    stack: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """
    Build the JSON error envelope.

    Args:
        message: Message shown to the caller
        status_code: HTTP status code
        errors: Optional field-level errors
        stack: Traceback, included only outside production
        headers: Extra response headers

    Returns:
        JSONResponse with ``success``, ``status``, ``message`` and ``errors``
    """
    content: Dict[str, Any] = {
        "success": False,
        "status": "fail" if 400 <= status_code < 500 else "error",
        "message": message,
        "errors": errors,
    }
    if stack:
        content["stack"] = stack
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def postgres_error_to_api_error(error: asyncpg.PostgresError) -> Optional[ApiError]:
    """Map constraint violations onto caller-facing errors; None for anything else."""
    if isinstance(error, asyncpg.UniqueViolationError):
        match = _DUPLICATE_KEY.search(getattr(error, "detail", None) or "")
        field = match.group(1) if match else "field"
        value = match.group(2) if match else "value"
        return ApiError.conflict(f"Duplicate value: {field} '{value}' already exists")
    if isinstance(error, asyncpg.ForeignKeyViolationError):
        return ApiError.bad_request("Referenced resource does not exist")
    if isinstance(error, asyncpg.CheckViolationError):
        return ApiError.bad_request("Invalid data: constraint violation")
    return None


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware with consistent JSON responses.

    Catches exceptions that no route-level handler converted and returns the
    error envelope. Tracebacks are exposed only outside production.
    """

    def __init__(self, app: Any, is_production: bool = False):
        super().__init__(app)
        self.is_production = is_production

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Process request and handle any exceptions.

        Args:
            request: FastAPI request
            call_next: Next middleware/handler in chain

        Returns:
            Response object
        """
        try:
            response = await call_next(request)
            return cast(Response, response)
        except ApiError as e:
            return self._handle_api_error(e, request)
        except asyncpg.PostgresError as e:
            return self._handle_postgres_error(e, request)
        except PoolExhaustedError as e:
            return self._handle_pool_exhausted(e, request)
        except GymBookError as e:
            return self._handle_gymbook_error(e, request)
        except Exception as e:
            return self._handle_unexpected_error(e, request)

    def _stack(self) -> Optional[str]:
        return None if self.is_production else traceback.format_exc()

    def _handle_api_error(self, error: ApiError, request: Request) -> JSONResponse:
        logger.warning(f"{error.__class__.__name__}: {error.message} ({request.url.path})")
        return error_response(error.message, error.status_code, error.errors)

    def _handle_postgres_error(self, error: asyncpg.PostgresError, request: Request) -> JSONResponse:
        api_error = postgres_error_to_api_error(error)
        if api_error is not None:
            return self._handle_api_error(api_error, request)

        logger.error(f"Database error on {request.url.path}: {error}")
        message = GENERIC_ERROR_MESSAGE if self.is_production else str(error)
        return error_response(message, status.HTTP_500_INTERNAL_SERVER_ERROR, stack=self._stack())

    def _handle_pool_exhausted(self, error: PoolExhaustedError, request: Request) -> JSONResponse:
        logger.error(f"Pool exhausted on {request.url.path}: {error.message}")
        return error_response(
            error.message,
            status.HTTP_503_SERVICE_UNAVAILABLE,
            headers={"Retry-After": "1"},
        )

    def _handle_gymbook_error(self, error: GymBookError, request: Request) -> JSONResponse:
        logger.error(
            f"{error.__class__.__name__}: {error.message} "
            f"(recoverable={error.recoverable}, path={request.url.path})"
        )
        message = GENERIC_ERROR_MESSAGE if self.is_production else error.message
        return error_response(message, status.HTTP_500_INTERNAL_SERVER_ERROR, stack=self._stack())

    def _handle_unexpected_error(self, error: Exception, request: Request) -> JSONResponse:
        """Must not leak internal details in production."""
        logger.opt(exception=error).error(f"Unexpected error on {request.url.path}: {error}")
        message = GENERIC_ERROR_MESSAGE if self.is_production else str(error) or GENERIC_ERROR_MESSAGE
        return error_response(message, status.HTTP_500_INTERNAL_SERVER_ERROR, stack=self._stack())
