"""Structured logging for the kit engine, built on structlog.

Logs always go to stderr so the entry-point scripts can keep stdout for
their JSON results. ``KIT_ENGINE_LOG_LEVEL`` (or ``LOG_LEVEL``) picks the
level; ``KIT_ENGINE_LOG_FORMAT=json`` switches to one JSON object per line.
"""

from __future__ import annotations

import logging
import os
import sys

import structlog


def _resolve_level() -> int:
    name = os.environ.get("KIT_ENGINE_LOG_LEVEL") or os.environ.get("LOG_LEVEL", "INFO")
    return getattr(logging, name.upper(), logging.INFO)


def _renderer() -> structlog.types.Processor:
    if os.environ.get("KIT_ENGINE_LOG_FORMAT", "").lower() == "json":
        return structlog.processors.JSONRenderer(sort_keys=True)
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def setup_logging() -> structlog.stdlib.BoundLogger:
    """Configure structlog for stderr output and return the engine logger."""
    level = _resolve_level()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            _renderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=level, stream=sys.stderr, format="%(message)s")

    return structlog.get_logger("kit_engine")


logger: structlog.stdlib.BoundLogger = setup_logging()
