"""
Logging configuration.

Configures loguru logger for workers and the scheduler.
Sets up log rotation and retention policies.
"""

import sys

from loguru import logger

from referral_core.config.settings import settings


def setup_logging() -> None:
    """Configure logger with stderr output and file rotation."""
    level = "DEBUG" if settings.debug else settings.log_level

    logger.remove()
    logger.add(sys.stderr, level=level)
    logger.add(
        settings.log_file,
        rotation="1 day",
        retention="30 days",
        level=level,
        encoding="utf-8",
    )

    logger.info(f"Referral core logging configured ({settings.environment}, {level})")
