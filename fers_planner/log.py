"""Logging setup.

All modules log through the shared loguru ``logger``.  Applications call
:func:`configure_logging` once at startup to pick a level and sink; library
use without configuration keeps loguru's default stderr sink.

Example
-------

>>> from fers_planner.log import configure_logging
>>> handler_id = configure_logging("WARNING")
"""

from __future__ import annotations

import sys
from typing import Any, Optional

from loguru import logger

_DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", sink: Optional[Any] = None, fmt: str = _DEFAULT_FORMAT) -> int:
    """Replace existing loguru sinks with a single sink at ``level``.

    Returns the handler id so callers can remove it later.
    """
    logger.remove()
    return logger.add(sink or sys.stderr, level=level.upper(), format=fmt)


__all__ = ["configure_logging", "logger"]
