"""Structured logging setup.

Quarry modules log through ``structlog.get_logger(__name__)`` with dotted
event names (``query.executing``, ``schema.index.unsupported`` ...) and
never configure logging on import.  Applications that do not configure
structlog themselves can call :func:`configure_logging` once at startup::

    from quarry.log import configure_logging

    configure_logging("DEBUG", json=True)
"""

from __future__ import annotations

import logging
import sys

import structlog
from structlog.types import Processor

_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


def resolve_level(level: str | int | None) -> int:
    """Map a level name or number to a :mod:`logging` level; unknown names mean INFO."""
    if level is None:
        return logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    return getattr(logging, name) if name in _LEVELS else logging.INFO


def configure_logging(level: str | int | None = None, json: bool = False) -> None:
    """Route structlog through the standard library at ``level``.

    Args:
        level: Level name (``"DEBUG"``, ``"info"`` ...) or number.
        json: Render events as JSON lines instead of the console format.
    """
    numeric_level = resolve_level(level)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    root = logging.getLogger("quarry")
    root.handlers = [handler]
    root.setLevel(numeric_level)
    root.propagate = False

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer(colors=False),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
