# chat_relay/core/logging.py

from __future__ import annotations

import logging
import sys
from typing import Optional

from chat_relay.core.config import settings

# Libraries that log every frame or handshake at INFO
NOISY_LOGGERS = ("uvicorn.access", "websockets", "websockets.protocol", "websockets.server")


def resolve_level(name: str) -> int:
    """Map a level name like "debug" to its number; unknown names mean INFO."""
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(level_name: Optional[str] = None, fmt: Optional[str] = None) -> int:
    """
    Configure relay-wide logging once.

    The level and format default to LOG_LEVEL / LOG_FORMAT from settings.
    Records go to stdout. When uvicorn has already installed handlers, only
    the level is applied so its own output is left alone.

    Returns:
        The numeric level that was applied.
    """
    level = resolve_level(level_name or settings.LOG_LEVEL)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    if not root_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt or settings.LOG_FORMAT))
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    return level


def get_logger(name: str | None = None) -> logging.Logger:
    """Module logger: ``logger = get_logger(__name__)``."""
    return logging.getLogger(name)
