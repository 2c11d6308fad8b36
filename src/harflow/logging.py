"""structlog setup for harflow.

Events are snake_case names such as ``har_translated`` or
``dependency_from_foreign_node`` with keyword context. Everything goes to
stderr so ``harflow translate -o -`` leaves stdout to the JSON translation.
The CLI applies ``HARFLOW_LOG_LEVEL`` and ``HARFLOW_LOG_FORMAT`` at import
time; ``-v`` and ``--log-format`` reconfigure per invocation.
"""

import logging as stdlib_logging
import sys
from typing import Any

import structlog

# Library code logs at debug/info; a plain CLI run only shows problems.
DEFAULT_LEVEL = "WARNING"


def _level_number(level: str) -> int:
    value = getattr(stdlib_logging, level.upper(), None)
    return value if isinstance(value, int) else stdlib_logging.INFO


def configure_logging(level: str = DEFAULT_LEVEL, json_output: bool = False) -> None:
    """Route harflow events to stderr.

    Args:
        level: Minimum level name; unknown names fall back to INFO.
        json_output: One JSON object per line instead of the colored console view.
    """
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_level_number(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """Module-level logger, e.g. ``LOG = get_logger(__name__)``."""
    return structlog.get_logger(name)
