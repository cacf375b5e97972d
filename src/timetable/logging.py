"""Structured logging for the timetable package.

Modules log snake_case event names with keyword context through
get_logger(); every event carries the emitting module. Rendering follows
TimetableConfig: console lines while developing, one JSON object per line
in production. Output goes to stderr so scripts keep stdout for data.
"""

import logging
import sys
from typing import TextIO

import structlog

from src.timetable.config import TimetableConfig, get_config


def _level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(
    config: TimetableConfig | None = None, *, stream: TextIO | None = None
) -> None:
    """Configure structlog from ``config`` (default: the process config).

    Args:
        config: Supplies ``log_json`` and ``log_level``.
        stream: Destination, stderr unless given.
    """
    config = config or get_config()
    level = _level(config.log_level)
    stream = stream or sys.stderr

    if config.log_json:
        renderer = structlog.processors.JSONRenderer(sort_keys=True)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=stream),
        cache_logger_on_first_use=False,
    )

    # urllib3 connection warnings from the REST store
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter("%(levelname)s %(name)s %(message)s"))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(max(level, logging.WARNING))


def get_logger(name: str) -> structlog.typing.FilteringBoundLogger:
    """Logger whose events are tagged with ``module=name``."""
    return structlog.get_logger(name, module=name)
