from __future__ import annotations

import sys

from loguru import logger

from .settings import log_level


def setup_logging() -> None:
    """Replace loguru's default sink with one honouring SUBMANAGER_LOG_LEVEL."""
    level = log_level()
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
    )
    logger.info("Logging configured with level: {}", level)
