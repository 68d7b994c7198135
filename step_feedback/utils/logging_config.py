"""
Logging configuration using structlog for structured, JSON-based logging.

Logs are written to stderr so that command output on stdout (reports,
scores) stays machine-readable.
"""

import logging
import sys
from typing import Any

import structlog


def _stderr_logger_factory(*args: Any) -> structlog.PrintLogger:
    """Create a PrintLogger bound to whatever ``sys.stderr`` currently is."""
    return structlog.PrintLogger(file=sys.stderr)


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structured logging.

    Sets up structlog with a pipeline of processors for structured logs that
    include timestamps, log levels, stack traces, and contextual information.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Render JSON lines; when False, use the console renderer
    """
    renderer: Any = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, log_level.upper(), logging.INFO)),
        context_class=dict,
        logger_factory=_stderr_logger_factory,
        # stderr is resolved per logger; caching would pin a replaced stream
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> Any:
    """Get a logger instance.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("metrics_recorded", count=12, evicted=0)
    """
    return structlog.get_logger(name)
