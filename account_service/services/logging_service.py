"""Structured logging configuration with redaction support."""

import logging
import sys
from typing import Any, Dict

import structlog

from account_service.errors import AccountServiceError

SENSITIVE_KEYS = {
    "api_key",
    "authorization",
    "cookie",
    "secret",
    "password",
    "token",
}


def redact_sensitive(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Redact sensitive information from log entries.

    Redacts any field whose name contains one of ``SENSITIVE_KEYS``:
    passwords and password hashes, access/refresh tokens, secrets,
    Authorization headers and cookies.
    """
    for key in list(event_dict.keys()):
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_KEYS):
            event_dict[key] = "REDACTED"

    return event_dict


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog for JSON output with correlation ID support.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        redact_sensitive,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance.

    Args:
        name: Optional logger name for context

    Returns:
        Configured structlog logger
    """
    logger = structlog.get_logger()
    if name:
        logger = logger.bind(logger_name=name)
    return logger


def log_request_failure(
    error: AccountServiceError, correlation_id: str, path: str
) -> None:
    """Log a typed error at the level its status class calls for.

    Server-side failures (5xx) are logged as errors with the exception
    attached; client errors (4xx) are informational.

    Args:
        error: The error being returned to the caller
        correlation_id: Request correlation ID
        path: Request path
    """
    logger = structlog.get_logger(__name__)
    fields = {
        "correlation_id": correlation_id,
        "path": path,
        "error_type": type(error).__name__,
        "status_code": error.status_code,
    }
    if error.status_code >= 500:
        logger.error("request_failed", detail=error.message, exc_info=error, **fields)
    else:
        logger.info("request_rejected", **fields)
