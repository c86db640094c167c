"""Loguru configuration."""

import sys

from loguru import logger

from stepwise.core.config import Settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def configure_logging(settings: Settings) -> None:
    """Configure loguru based on settings.

    Replaces the default handler with a coloured stderr sink and, when
    ``stepwise_log_file`` is set, a daily-rotated file sink.
    """
    logger.remove()  # Remove default handler

    level = "DEBUG" if settings.stepwise_debug else settings.stepwise_log_level

    logger.add(
        sys.stderr,
        level=level,
        format=LOG_FORMAT,
        colorize=True,
    )

    if settings.stepwise_log_file:
        logger.add(
            settings.stepwise_log_file,
            rotation="1 day",
            retention="7 days",
            level=settings.stepwise_log_level,
            format=LOG_FORMAT,
        )
