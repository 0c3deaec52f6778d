# tests/test_logging.py
from __future__ import annotations

import logging

import pytest

from chat_relay.core.logging import get_logger, resolve_level, setup_logging


@pytest.fixture
def root_logger():
    """Restore root handlers and levels touched by setup_logging."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    access_level = logging.getLogger("uvicorn.access").level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    logging.getLogger("uvicorn.access").setLevel(access_level)


@pytest.mark.parametrize("name,expected", [("debug", logging.DEBUG), ("WARNING", logging.WARNING), ("bogus", logging.INFO)])
def test_resolve_level(name, expected):
    assert resolve_level(name) == expected


def test_setup_installs_one_stdout_handler(root_logger):
    root_logger.handlers[:] = []

    assert setup_logging("debug", "%(message)s") == logging.DEBUG
    setup_logging("debug")

    assert len(root_logger.handlers) == 1
    assert root_logger.handlers[0].formatter._fmt == "%(message)s"
    assert root_logger.level == logging.DEBUG
    assert logging.getLogger("uvicorn.access").level == logging.WARNING


def test_setup_keeps_existing_handlers(root_logger):
    existing = logging.NullHandler()
    root_logger.handlers[:] = [existing]

    setup_logging("error")

    assert root_logger.handlers == [existing]
    assert root_logger.level == logging.ERROR


def test_get_logger_is_named():
    assert get_logger("chat_relay.services.chat_hub").name == "chat_relay.services.chat_hub"
