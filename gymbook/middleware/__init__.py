"""Middleware package for FastAPI application."""

from .correlation import CorrelationMiddleware, get_correlation_id
from .error_handler import ErrorHandlerMiddleware, error_response, postgres_error_to_api_error

__all__ = [
    "CorrelationMiddleware",
    "ErrorHandlerMiddleware",
    "error_response",
    "get_correlation_id",
    "postgres_error_to_api_error",
]
