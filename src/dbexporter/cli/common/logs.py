"""structlog configuration for the exporter process."""

from __future__ import annotations

import logging
import sys

import structlog

LOG_FORMATS = ("console", "json")


def configure_logging(level: str = "info", fmt: str = "console") -> None:
    """
    Configure structlog for the whole process.

    Args:
        level: Minimum level to emit (debug, info, warning, error).
        fmt: "console" for human-readable key=value lines, "json" for one
            JSON object per line.

    Raises:
        ValueError: If the level or format is not recognized.
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")
    if fmt not in LOG_FORMATS:
        raise ValueError(f"Unknown log format: {fmt} (expected one of {', '.join(LOG_FORMATS)})")

    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == "json"
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
