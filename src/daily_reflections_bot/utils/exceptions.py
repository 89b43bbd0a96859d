"""
Custom exceptions for the Daily Reflections Bot.

This module defines the error taxonomy used throughout the application.
Every error carries the kind of failure, the time it was raised, a
best-effort label of the operation that raised it, and the underlying
cause with its traceback. All exceptions inherit from ReflectionsBotError
so callers can catch every bot-related error with a single except clause.

Wrapping is idempotent: passing an already wrapped error through
wrap_error() returns it untouched, so the original context survives any
number of re-raises.
"""

import inspect
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Type


class ErrorType(str, Enum):
    """Kinds of failure recognised by the bot."""

    VALIDATION = "VALIDATION"
    AUTHENTICATION = "AUTHENTICATION"
    AUTHORIZATION = "AUTHORIZATION"
    NETWORK = "NETWORK"
    DATABASE = "DATABASE"
    NOT_FOUND = "NOT_FOUND"
    EXTERNAL_SERVICE = "EXTERNAL_SERVICE"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


ERROR_STATUS_CODES: Dict[ErrorType, int] = {
    ErrorType.VALIDATION: 400,
    ErrorType.AUTHENTICATION: 401,
    ErrorType.AUTHORIZATION: 403,
    ErrorType.NETWORK: 502,
    ErrorType.DATABASE: 503,
    ErrorType.NOT_FOUND: 404,
    ErrorType.EXTERNAL_SERVICE: 503,
    ErrorType.INTERNAL: 500,
    ErrorType.UNKNOWN: 500,
}


def _calling_operation() -> str:
    """Return the name of the first frame outside this module."""
    frame = inspect.currentframe()
    try:
        while frame is not None:
            if frame.f_globals.get("__name__") != __name__:
                return frame.f_code.co_name
            frame = frame.f_back
    finally:
        del frame
    return "unknown"


class ReflectionsBotError(Exception):
    """
    Base exception class for all Daily Reflections Bot errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information about the error
        original_error: The exception that caused this error (if any)
        error_type: Kind of failure
        operation: Label of the operation that raised the error
        timestamp: ISO-8601 UTC time the error was created
        stack: Formatted traceback of the cause, or of the creation site
    """

    default_type: ErrorType = ErrorType.UNKNOWN

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_error: Optional[BaseException] = None,
        error_type: Optional[ErrorType] = None,
        operation: Optional[str] = None,
    ) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error message
            context: Additional context information
            original_error: The original exception that caused this error
            error_type: Overrides the class default kind
            operation: Label of the failing operation; derived from the
                calling frame when omitted
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.original_error = original_error
        self.error_type = error_type or self.default_type
        self.operation = operation or _calling_operation()
        self.timestamp = datetime.now(timezone.utc).isoformat()
        if original_error is not None and original_error.__traceback__ is not None:
            self.stack = "".join(
                traceback.format_exception(
                    type(original_error), original_error, original_error.__traceback__
                )
            )
        else:
            self.stack = "".join(traceback.format_stack(limit=8)[:-1])

    @property
    def status_code(self) -> int:
        """HTTP status code matching the error kind."""
        return ERROR_STATUS_CODES[self.error_type]

    def to_log_dict(self) -> Dict[str, Any]:
        """Full diagnostic context, for logs only."""
        return {
            "error_type": self.error_type.value,
            "error_message": self.message,
            "operation": self.operation,
            "error_timestamp": self.timestamp,
            "context": self.context,
            "cause": repr(self.original_error) if self.original_error else None,
            "stack": self.stack,
        }

    def to_public_dict(self) -> Dict[str, Any]:
        """Context that is safe to return to callers outside the process."""
        return {
            "type": self.error_type.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }

    def __str__(self) -> str:
        """Return string representation of the error."""
        error_str = self.message
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            error_str += f" (Context: {context_str})"
        if self.original_error:
            error_str += f" (Caused by: {self.original_error})"
        return error_str


class ValidationError(ReflectionsBotError):
    """
    Raised when input cannot be parsed or fails a domain rule.

    Example:
        ```python
        raise ValidationError(
            "Unknown month name",
            context={"month": "SMARCH"},
        )
        ```
    """

    default_type = ErrorType.VALIDATION


class AuthenticationError(ReflectionsBotError):
    """Raised when a request signature or bearer token cannot be verified."""

    default_type = ErrorType.AUTHENTICATION


class AuthorizationError(ReflectionsBotError):
    """Raised when an authenticated caller may not perform an operation."""

    default_type = ErrorType.AUTHORIZATION


class NetworkError(ReflectionsBotError):
    """
    Raised when a remote host cannot be reached.

    This covers connection failures, DNS errors and timeouts. A remote
    host that answers with an error status raises ExternalServiceError
    instead.
    """

    default_type = ErrorType.NETWORK


class DatabaseError(ReflectionsBotError):
    """
    Raised when there's a database operation error.

    Example:
        ```python
        try:
            await session.commit()
        except SQLAlchemyError as e:
            raise DatabaseError(
                "Failed to save reflection",
                context={"date_string": row.date_string},
                original_error=e,
            )
        ```
    """

    default_type = ErrorType.DATABASE


class NotFoundError(ReflectionsBotError):
    """Raised when a keyed record does not exist."""

    default_type = ErrorType.NOT_FOUND


class ExternalServiceError(ReflectionsBotError):
    """
    Raised when a remote service answers with an unusable response.

    This covers non-success HTTP statuses from the content API and from
    Discord, as well as fan-out calls that fail as a whole.
    """

    default_type = ErrorType.EXTERNAL_SERVICE


class InternalError(ReflectionsBotError):
    """Raised for programming or state errors inside the bot."""

    default_type = ErrorType.INTERNAL


class ConfigurationError(ReflectionsBotError):
    """
    Raised when there's an error in configuration.

    This exception is raised when:
    - Required environment variables are missing
    - Configuration values are invalid
    - No delivery targets are configured for a delivery run
    """

    default_type = ErrorType.INTERNAL


ERROR_CLASSES: Dict[ErrorType, Type[ReflectionsBotError]] = {
    ErrorType.VALIDATION: ValidationError,
    ErrorType.AUTHENTICATION: AuthenticationError,
    ErrorType.AUTHORIZATION: AuthorizationError,
    ErrorType.NETWORK: NetworkError,
    ErrorType.DATABASE: DatabaseError,
    ErrorType.NOT_FOUND: NotFoundError,
    ErrorType.EXTERNAL_SERVICE: ExternalServiceError,
    ErrorType.INTERNAL: InternalError,
    ErrorType.UNKNOWN: ReflectionsBotError,
}


def wrap_error(
    error: Any,
    error_type: Optional[ErrorType] = None,
    operation: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
) -> ReflectionsBotError:
    """
    Ensure an error carries kind, timestamp, operation and cause.

    - An existing ReflectionsBotError is returned as-is, keeping its
      original context.
    - Any other exception is wrapped in the subclass for ``error_type``.
    - Non-exception values are converted to a message first.

    The wrapped error is logged once, here.

    Args:
        error: Exception or arbitrary value to wrap
        error_type: Kind of failure, UNKNOWN when omitted
        operation: Label of the failing operation
        context: Extra context to attach

    Returns:
        The wrapped error, ready to raise
    """
    if isinstance(error, ReflectionsBotError):
        return error

    kind = error_type or ErrorType.UNKNOWN
    error_class = ERROR_CLASSES[kind]
    if isinstance(error, BaseException):
        wrapped = error_class(
            str(error) or type(error).__name__,
            context=context,
            original_error=error,
            error_type=kind,
            operation=operation or _calling_operation(),
        )
    else:
        wrapped = error_class(
            str(error),
            context=context,
            error_type=kind,
            operation=operation or _calling_operation(),
        )

    # Imported here to keep this module free of import cycles
    from daily_reflections_bot.utils.logging import log_error

    log_error(wrapped)
    return wrapped
