"""
Logging configuration and utilities for the Daily Reflections Bot.

This module provides centralized logging setup with support for both
structured JSON logging (for production) and human-readable text logging
(for development). It integrates with structlog for structured logging
and rich for console output.

Features:
- HTTP request/response logging for the content API and Discord
- Operation timing with correlation IDs
- Service-specific loggers
- Consistent logging of wrapped errors and delivery outcomes
"""

import json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Dict, Iterator, Optional, Union
from urllib.parse import urlparse

import structlog
from rich.console import Console
from rich.logging import RichHandler

from daily_reflections_bot.config import LoggingConfig

if TYPE_CHECKING:
    from daily_reflections_bot.utils.exceptions import ReflectionsBotError


def setup_logging(config: LoggingConfig) -> None:
    """
    Set up application logging based on configuration.

    This function configures the logging system with either JSON structured
    logging for production or rich text logging for development. It sets up
    both the standard library logging and structlog for consistent output.

    Args:
        config: Logging configuration settings

    Example:
        ```python
        app_config = load_config()
        setup_logging(app_config.logging)

        logger = get_logger(__name__)
        logger.info("Application started", version="0.1.0")
        ```
    """
    logging.getLogger().handlers.clear()
    logging.getLogger().setLevel(config.level)

    if config.format == "json":
        _setup_json_logging(config)
    else:
        _setup_rich_logging(config)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.CallsiteParameterAdder(
                parameters=[structlog.processors.CallsiteParameter.FILENAME,
                            structlog.processors.CallsiteParameter.LINENO]
            ),
            _structlog_processor if config.format == "json" else _rich_processor,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, config.level)
        ),
        logger_factory=structlog.WriteLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    configure_external_loggers()


def _setup_json_logging(config: LoggingConfig) -> None:
    """Set up structured JSON logging for production."""
    formatter = logging.Formatter(
        fmt='{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
            '"logger": "%(name)s", "message": "%(message)s"}',
        datefmt="%Y-%m-%dT%H:%M:%SZ"
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(config.level)

    logging.getLogger().addHandler(handler)


def _setup_rich_logging(config: LoggingConfig) -> None:
    """Set up rich text logging for development."""
    console = Console(stderr=True, force_terminal=True, width=120)

    handler = RichHandler(
        console=console,
        show_time=True,
        show_level=True,
        show_path=True,
        markup=False,
        rich_tracebacks=True,
    )

    handler.setLevel(config.level)
    logging.getLogger().addHandler(handler)


def _structlog_processor(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> str:
    """Render structlog events as JSON."""
    return json.dumps(event_dict, default=str)


def _rich_processor(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> str:
    """Render structlog events as a single human-readable line."""
    message = str(event_dict.pop("event", ""))
    level = event_dict.get("level", "info").upper()
    timestamp = event_dict.get("timestamp", "")

    context_items = [
        f"{key}={value}"
        for key, value in event_dict.items()
        if key not in {"timestamp", "level", "filename", "lineno"}
    ]
    if context_items:
        message += f" ({', '.join(context_items)})"

    return f"{timestamp} {level:<8} {message}"


def get_logger(name: Optional[str] = None) -> structlog.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Optional logger name (defaults to calling module)

    Returns:
        Configured structlog BoundLogger instance

    Example:
        ```python
        logger = get_logger(__name__)
        logger.info("Resolved reflection", date_string="14 OCTOBER", cached=True)
        ```
    """
    return structlog.get_logger(name)


def get_service_logger(service_name: str) -> structlog.BoundLogger:
    """
    Get a service-specific logger with consistent naming.

    Args:
        service_name: Name of the service (e.g. 'source', 'discord', 'database')

    Returns:
        Logger bound with service context
    """
    logger = get_logger(f"service.{service_name}")
    return logger.bind(service=service_name)


def generate_correlation_id() -> str:
    """Generate a short unique ID for tracing one request across log lines."""
    return str(uuid.uuid4())[:8]


def log_function_call(func_name: str, **kwargs: Any) -> None:
    """
    Log function call with parameters at debug level.

    Args:
        func_name: Name of the function being called
        **kwargs: Function parameters to log
    """
    logger = get_logger()
    logger.debug("Function called", function=func_name, **kwargs)


def log_error(
    error: Union["ReflectionsBotError", BaseException],
    context: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log an error with context information.

    Wrapped bot errors contribute their kind, operation and timestamp;
    plain exceptions contribute their type and message.

    Args:
        error: The exception that occurred
        context: Additional context information
    """
    logger = get_logger("errors")
    to_log_dict = getattr(error, "to_log_dict", None)
    if callable(to_log_dict):
        error_context = to_log_dict()
        # The stack is kept for debug output only
        stack = error_context.pop("stack", None)
        logger.debug("Error stack", operation=error_context.get("operation"), stack=stack)
    else:
        error_context = {
            "error_type": type(error).__name__,
            "error_message": str(error),
        }

    if context:
        error_context.update(context)

    logger.error("Exception occurred", **error_context)


def log_http_request(
    method: str,
    url: str,
    headers: Optional[Dict[str, str]] = None,
    body: Optional[Union[str, Dict[str, Any]]] = None,
    service: str = "unknown",
    correlation_id: Optional[str] = None
) -> None:
    """
    Log HTTP request details.

    Webhook URLs embed their secret token in the path, so only the host
    and the first path segments are logged.

    Args:
        method: HTTP method (GET, POST, etc.)
        url: Request URL
        headers: Request headers (sensitive headers will be masked)
        body: Request body (will be truncated if too long)
        service: Service name (source, discord, etc.)
        correlation_id: Optional correlation ID for request tracking
    """
    logger = get_service_logger(service)
    parsed_url = urlparse(url)

    safe_headers = {}
    if headers:
        for key, value in headers.items():
            if any(sensitive in key.lower() for sensitive in ["authorization", "token", "key", "secret"]):
                safe_headers[key] = f"***{value[-4:] if len(value) > 4 else '***'}"
            else:
                safe_headers[key] = value

    safe_body = body
    if isinstance(body, str) and len(body) > 1000:
        safe_body = body[:1000] + "... (truncated)"
    elif isinstance(body, dict):
        safe_body = {k: (v if len(str(v)) <= 100 else f"{str(v)[:100]}... (truncated)")
                     for k, v in body.items()}

    logger.debug(
        "HTTP request initiated",
        method=method,
        host=parsed_url.netloc,
        path=mask_url_path(parsed_url.path),
        headers=safe_headers,
        body=safe_body,
        correlation_id=correlation_id or "none"
    )


def mask_url_path(path: str, keep_segments: int = 3) -> str:
    """Keep the leading path segments and mask the rest."""
    segments = [segment for segment in path.split("/") if segment]
    if len(segments) <= keep_segments:
        return path
    return "/" + "/".join(segments[:keep_segments] + ["***"])


def log_http_response(
    status_code: int,
    response_time_ms: float,
    response_size: Optional[int] = None,
    error: Optional[str] = None,
    service: str = "unknown",
    correlation_id: Optional[str] = None
) -> None:
    """
    Log HTTP response details.

    Args:
        status_code: HTTP status code, 0 when no response was received
        response_time_ms: Response time in milliseconds
        response_size: Response size in bytes
        error: Error message if request failed
        service: Service name (source, discord, etc.)
        correlation_id: Optional correlation ID for request tracking
    """
    logger = get_service_logger(service)

    log_level = "debug"
    if status_code >= 400 or status_code == 0:
        log_level = "error" if status_code >= 500 or status_code == 0 else "warning"

    log_data: Dict[str, Any] = {
        "status_code": status_code,
        "response_time_ms": round(response_time_ms, 2),
        "correlation_id": correlation_id or "none"
    }

    if response_size is not None:
        log_data["response_size_bytes"] = response_size

    if error:
        log_data["error"] = error

    message = "HTTP request failed" if error else "HTTP response received"
    getattr(logger, log_level)(message, **log_data)


@contextmanager
def log_operation_timing(operation_name: str, **context: Any) -> Iterator[str]:
    """
    Context manager to log operation timing.

    Args:
        operation_name: Name of the operation being timed
        **context: Additional context to include in logs

    Yields:
        The correlation ID used for the operation
    """
    logger = get_logger()
    correlation_id = context.pop("correlation_id", None) or generate_correlation_id()

    start_time = time.time()
    logger.info(
        f"Starting {operation_name}",
        operation=operation_name,
        correlation_id=correlation_id,
        **context
    )

    try:
        yield correlation_id
        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Completed {operation_name}",
            operation=operation_name,
            duration_ms=round(duration_ms, 2),
            correlation_id=correlation_id,
            status="success",
            **context
        )
    except Exception as e:
        duration_ms = (time.time() - start_time) * 1000
        logger.error(
            f"Failed {operation_name}",
            operation=operation_name,
            duration_ms=round(duration_ms, 2),
            correlation_id=correlation_id,
            status="error",
            error_type=type(e).__name__,
            error_message=str(e),
            **context
        )
        raise


def log_delivery_result(
    target_index: int,
    success: bool,
    status: Optional[int] = None,
    error: Optional[str] = None,
    **context: Any,
) -> None:
    """
    Log the outcome of posting to one delivery target.

    Args:
        target_index: Position of the target in the configured list
        success: Whether the target accepted the payload
        status: HTTP status returned, if any
        error: Failure summary, if any
        **context: Additional context
    """
    logger = get_service_logger("delivery")
    if success:
        logger.info("Posted to webhook", target_index=target_index, status=status, **context)
    else:
        logger.error(
            "Failed to post to webhook",
            target_index=target_index,
            status=status,
            error=error,
            **context
        )


def log_database_operation(
    operation: str,
    table: str,
    duration_ms: Optional[float] = None,
    rows_affected: Optional[int] = None,
    **context: Any
) -> None:
    """
    Log database operations.

    Args:
        operation: Database operation (SELECT, INSERT, etc.)
        table: Database table name
        duration_ms: Operation duration in milliseconds
        rows_affected: Number of rows affected
        **context: Additional context
    """
    logger = get_service_logger("database")

    log_data: Dict[str, Any] = {
        "operation": operation,
        "table": table,
        **context
    }

    if duration_ms is not None:
        log_data["duration_ms"] = round(duration_ms, 2)
    if rows_affected is not None:
        log_data["rows_affected"] = rows_affected

    logger.debug("Database operation", **log_data)


def configure_external_loggers() -> None:
    """
    Configure logging levels for external libraries to reduce noise.
    """
    logging.getLogger("discord").setLevel(logging.WARNING)

    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.client").setLevel(logging.WARNING)

    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
