"""Structured logging for the rule engine.

The engine only ever obtains loggers through :func:`get_logger`. Hosts that
want the engine's own rendering call :func:`setup_logging` once at startup;
hosts that already configure structlog leave it alone.
"""

import logging
import sys
from typing import Any, TextIO

import structlog
from structlog.types import Processor

from sharewatch.core.config import Settings, get_settings


def _processors(settings: Settings) -> list[Processor]:
    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.debug:
        return [*shared, structlog.dev.ConsoleRenderer(colors=True)]
    return [*shared, structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]


def setup_logging(
    settings: Settings | None = None,
    *,
    stream: TextIO | None = None,
    route_stdlib: bool = False,
) -> None:
    """Configure structlog from sharewatch settings.

    Args:
        settings: Settings to apply, the cached environment settings by default
        stream: Output stream, stdout by default
        route_stdlib: Also send stdlib loggers to ``stream``. Off by default so
            an embedding application keeps control of the root logger.
    """
    settings = settings or get_settings()
    stream = stream or sys.stdout
    level = getattr(logging, settings.log_level)

    structlog.configure(
        processors=_processors(settings),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=True,
    )

    if route_stdlib:
        logging.basicConfig(format="%(message)s", stream=stream, level=level)


def get_logger(name: str | None = None, **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """Get a logger instance with optional initial context values.

    Args:
        name: Logger name (optional)
        **initial_values: Initial context values to bind

    Returns:
        Bound logger instance
    """
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger
