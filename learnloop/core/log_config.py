"""Loguru sink configuration."""

from __future__ import annotations

import sys

from loguru import logger

from config import Settings

LOG_FORMAT = (
    "<dim>{time:YYYY-MM-DD HH:mm:ss}</dim> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def setup_logging(settings: Settings) -> None:
    """
    Replace the default loguru sink with the configured ones.

    Called once by the composition root. Library code only ever uses
    ``from loguru import logger``.
    """
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level, format=LOG_FORMAT)

    if settings.log_file:
        logger.add(
            settings.log_file,
            level=settings.log_level,
            format=LOG_FORMAT,
            rotation="10 MB",
            retention=5,
            enqueue=True,
        )
    logger.debug(f"Logging configured at {settings.log_level}")
