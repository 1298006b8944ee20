"""Custom exception classes for GymBook."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class GymBookError(Exception):
    """Base exception for GymBook."""

    def __init__(
        self, message: str, recoverable: bool = True, details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize GymBook error.

        Args:
            message: Error message
            recoverable: Whether the error is recoverable with retry
            details: Additional error details
        """
        self.message = message
        self.recoverable = recoverable
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "recoverable": self.recoverable,
            "details": self.details,
            "timestamp": self.timestamp,
        }


# Process-scoped errors
class ConfigurationError(GymBookError):
    """Configuration error occurred. Fatal at startup."""

    def __init__(
        self,
        message: str = "Configuration error",
        recoverable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, recoverable, details)


class MissingEnvironmentVariableError(ConfigurationError):
    """Raised when required environment variables are missing."""

    def __init__(self, variable_names: List[str]):
        self.variable_names = list(variable_names)
        super().__init__(
            f"Missing required environment variables: {', '.join(self.variable_names)}",
            recoverable=False,
            details={"variables": self.variable_names},
        )


# Database Errors
class DatabaseError(GymBookError):
    """Base class for database-related errors."""

    def __init__(
        self,
        message: str = "Database error occurred",
        recoverable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, recoverable, details)


class DatabaseUnreachableError(DatabaseError):
    """Raised when the database cannot be reached at startup."""

    def __init__(self, message: str = "Database is unreachable"):
        super().__init__(message, recoverable=False)


class DatabaseNotConnectedError(DatabaseError):
    """Raised when operation attempted without an open pool."""

    def __init__(self):
        super().__init__(
            "Database connection pool is not open. Call open() first.", recoverable=False
        )


class PoolExhaustedError(DatabaseError):
    """Raised when no pooled connection became free within the connect timeout."""

    def __init__(self, timeout: float, pool_size: int):
        super().__init__(
            f"Database connection pool exhausted after {timeout}s (pool size: {pool_size}). "
            "Please retry the request.",
            recoverable=True,
            details={"timeout": timeout, "pool_size": pool_size},
        )


class TransactionFailure(DatabaseError):
    """Raised when a transaction control statement (BEGIN/COMMIT) fails."""

    def __init__(self, message: str = "Transaction failed and was rolled back"):
        super().__init__(message, recoverable=True)


class IdlePoolError(DatabaseError):
    """An idle pooled connection failed. Fatal to the process."""

    def __init__(self, message: str = "Unexpected error on idle PostgreSQL client"):
        super().__init__(message, recoverable=False)


# Request-scoped errors
class ApiError(GymBookError):
    """Error reported to API callers with an HTTP status code."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        errors: Optional[List[Dict[str, Any]]] = None,
        recoverable: bool = False,
        details: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize API error.

        Args:
            message: Message shown to the caller
            status_code: HTTP status code
            errors: Optional field-level error list
            recoverable: Whether the caller may retry
            details: Additional error details
        """
        self.status_code = status_code
        self.status = "fail" if 400 <= status_code < 500 else "error"
        self.errors = errors
        super().__init__(message, recoverable, details)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary."""
        data = super().to_dict()
        data["status_code"] = self.status_code
        data["status"] = self.status
        return data

    @classmethod
    def bad_request(
        cls, message: str = "Bad request", errors: Optional[List[Dict[str, Any]]] = None
    ) -> "ApiError":
        return cls(message, 400, errors)

    @classmethod
    def unauthorized(cls, message: str = "Unauthorized") -> "ApiError":
        return cls(message, 401)

    @classmethod
    def forbidden(cls, message: str = "Forbidden") -> "ApiError":
        return cls(message, 403)

    @classmethod
    def not_found(cls, message: str = "Resource not found") -> "ApiError":
        return cls(message, 404)

    @classmethod
    def conflict(cls, message: str = "Conflict") -> "ApiError":
        return cls(message, 409)

    @classmethod
    def too_many_requests(cls, message: str = "Too many requests") -> "ApiError":
        return cls(message, 429, recoverable=True)

    @classmethod
    def internal(cls, message: str = "Internal server error") -> "ApiError":
        return cls(message, 500)


class ValidationError(ApiError):
    """Input validation error."""

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
    ):
        """
        Initialize validation error.

        Args:
            message: Error message
            field: Field name that failed validation
            errors: Field-level error list
        """
        self.field = field
        if errors is None and field:
            errors = [{"field": field, "message": message}]
        super().__init__(message, 400, errors, details={"field": field} if field else None)


# Authentication Errors
class AuthenticationError(ApiError):
    """Authentication failed."""

    def __init__(self, message: str = "Authentication failed", recoverable: bool = False):
        super().__init__(message, 401, recoverable=recoverable)


class InvalidCredentialsError(AuthenticationError):
    """Raised when email or password is wrong."""

    def __init__(
        self,
        message: str = "Invalid email or password",
        attempts_remaining: Optional[int] = None,
    ):
        self.attempts_remaining = attempts_remaining
        if attempts_remaining is not None:
            message = f"{message}. {attempts_remaining} attempts remaining"
        super().__init__(message)


class TokenExpiredError(AuthenticationError):
    """Raised when a JWT has expired."""

    def __init__(self, message: str = "Token expired. Please log in again"):
        super().__init__(message, recoverable=True)


class TokenInvalidError(AuthenticationError):
    """Raised when a JWT is malformed, tampered with, or of the wrong type."""

    def __init__(self, message: str = "Invalid token. Please log in again"):
        super().__init__(message)


class AccountLockedError(ApiError):
    """Raised when an account is temporarily locked after failed logins."""

    def __init__(self, message: str, retry_after: Optional[int] = None):
        """
        Initialize account locked error.

        Args:
            message: Error message
            retry_after: Seconds until the lock expires
        """
        self.retry_after = retry_after
        super().__init__(
            message,
            429,
            recoverable=True,
            details={"retry_after": retry_after} if retry_after else None,
        )


class DuplicateEmailError(ApiError):
    """Raised when registering an email that already exists."""

    def __init__(self, message: str = "User with this email already exists"):
        super().__init__(message, 409)


class InsufficientPermissionsError(ApiError):
    """Raised when the authenticated user lacks a required role."""

    def __init__(self, message: str):
        super().__init__(message, 403)



# Client-side errors
class ApiRequestError(GymBookError):
    """Raised by the API client for failed requests."""

    def __init__(
        self, status: int, message: str, payload: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize API request error.

        Args:
            status: HTTP status code, or 0 when no response was received
            message: Server-provided message when available
            payload: Decoded response body
        """
        self.status = status
        self.payload = payload or {}
        super().__init__(message, recoverable=status == 0 or status >= 500)
