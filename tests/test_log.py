"""Unit tests for logging setup."""

from __future__ import annotations

import logging

import pytest
import structlog

from quarry.log import configure_logging, resolve_level


@pytest.mark.parametrize(
    ("level", "expected"),
    [
        (None, logging.INFO),
        ("debug", logging.DEBUG),
        (" WARNING ", logging.WARNING),
        ("verbose", logging.INFO),
        (logging.ERROR, logging.ERROR),
    ],
)
def test_resolve_level(level, expected):
    assert resolve_level(level) == expected


def test_configure_logging():
    try:
        configure_logging("debug", json=True)
        quarry_logger = logging.getLogger("quarry")
        assert quarry_logger.level == logging.DEBUG
        assert quarry_logger.propagate is False
        assert len(quarry_logger.handlers) == 1
        assert structlog.is_configured()
    finally:
        structlog.reset_defaults()
        quarry_logger = logging.getLogger("quarry")
        quarry_logger.handlers = []
        quarry_logger.propagate = True
        quarry_logger.setLevel(logging.NOTSET)
