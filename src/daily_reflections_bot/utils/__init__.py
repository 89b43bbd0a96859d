"""Utility modules for the Daily Reflections Bot."""

from daily_reflections_bot.utils.exceptions import (
    ReflectionsBotError,
    ErrorType,
    ValidationError,
    AuthenticationError,
    AuthorizationError,
    NetworkError,
    DatabaseError,
    NotFoundError,
    ExternalServiceError,
    InternalError,
    ConfigurationError,
    wrap_error,
)
from daily_reflections_bot.utils.logging import setup_logging

__all__ = [
    "ReflectionsBotError",
    "ErrorType",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "NetworkError",
    "DatabaseError",
    "NotFoundError",
    "ExternalServiceError",
    "InternalError",
    "ConfigurationError",
    "wrap_error",
    "setup_logging",
]
