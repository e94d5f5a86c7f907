"""Structured logging configuration for gitsync.

This module provides structlog-based logging with:
- JSON output for production (when env var GITSYNC_LOG_FORMAT=json)
- Pretty console output for development (default)
- Automatic context binding (repo_key, operation, backend)

Usage:
    from gitsync.logging import get_logger, configure_logging

    # Configure logging once at application startup
    configure_logging()

    # Get a logger and bind context
    log = get_logger(__name__)
    log = log.bind(repo_key="app-42")
    log.info("push_started", branch="main")

Access tokens must never be passed as log fields; use
:func:`gitsync.git.credentials.redact_url` on remote URLs first.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import structlog
from structlog.types import Processor

__all__ = [
    "get_logger",
    "configure_logging",
    "bind_context",
    "clear_context",
]

# Environment variable for log format
LOG_FORMAT_ENV_VAR = "GITSYNC_LOG_FORMAT"

# Environment variable for log level
LOG_LEVEL_ENV_VAR = "GITSYNC_LOG_LEVEL"

DEFAULT_LOG_LEVEL = "INFO"


def _get_log_level() -> int:
    """Get the log level from environment or default.

    Returns:
        Logging level constant (e.g., logging.INFO).
    """
    level_name = os.environ.get(LOG_LEVEL_ENV_VAR, DEFAULT_LOG_LEVEL).upper()
    return getattr(logging, level_name, logging.INFO)


def _is_json_output() -> bool:
    """Return True if GITSYNC_LOG_FORMAT=json."""
    return os.environ.get(LOG_FORMAT_ENV_VAR, "").lower() == "json"


def _get_shared_processors() -> list[Processor]:
    """Get processors shared between stdlib and structlog."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _get_development_processors() -> list[Processor]:
    """Get processors for development (pretty console output)."""
    return [
        *_get_shared_processors(),
        structlog.processors.format_exc_info,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]


def _get_production_processors() -> list[Processor]:
    """Get processors for production (JSON output)."""
    return [
        *_get_shared_processors(),
        structlog.processors.dict_tracebacks,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ]


def configure_logging(
    *,
    force_json: bool = False,
    level: int | None = None,
) -> None:
    """Configure structlog for the application.

    This should be called once at application startup. Subsequent calls
    will reconfigure logging.

    Args:
        force_json: Force JSON output regardless of environment variable.
        level: Override log level. If None, reads from GITSYNC_LOG_LEVEL env var.

    Example:
        # Default configuration (reads from environment)
        configure_logging()

        # Set specific log level
        configure_logging(level=logging.DEBUG)
    """
    use_json = force_json or _is_json_output()
    log_level = level if level is not None else _get_log_level()

    if use_json:
        processors = _get_production_processors()
    else:
        processors = _get_development_processors()

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Route stdlib loggers (dulwich, asyncio) through the same renderer
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(log_level)

    renderer: Processor
    if use_json:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
            foreign_pre_chain=_get_shared_processors(),
        )
    )

    root_logger.addHandler(handler)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance.

    Args:
        name: Logger name. If None, uses the caller's module name.

    Returns:
        A bound structlog logger.

    Example:
        log = get_logger(__name__)
        log.info("fetch_completed", remote="origin")
    """
    log: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return log


def bind_context(**context: Any) -> None:
    """Bind context variables that will be included in all log messages.

    This uses structlog's contextvars to propagate context across async
    boundaries, e.g. the repository identity held by a lock.

    Args:
        **context: Key-value pairs to bind to log context.
    """
    structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
