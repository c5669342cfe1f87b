#!/usr/bin/env python3
"""
log.py

Logging setup for rust-kg (loguru).

Library modules simply ``from loguru import logger``; entry points call
:func:`setup_logging` once to pick the level and sinks.
"""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

_CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def setup_logging(level: str = "INFO", log_file: str | Path | None = None):
    """
    Configure loguru sinks.

    :param level: Minimum level for the console sink.
    :param log_file: Optional file sink (rotated at 10 MB).
    :return: The configured ``logger``.
    """
    logger.remove()
    logger.add(sys.stderr, format=_CONSOLE_FORMAT, level=level.upper(), colorize=True)

    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            path,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
            level=level.upper(),
            rotation="10 MB",
        )
    return logger
