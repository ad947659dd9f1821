"""Centralized logging configuration."""

import sys

from loguru import logger

from bus_booking.config import settings


log_format = ' | '.join(
    (
        '<lk>{time:YYYY-MM-DD HH:mm:ss.SSS}</>',
        '<lvl>{level:<8}</>',
        '<c>{file}::{function}:{line}</>',
        '{message}',
    )
)


def setup_logging() -> None:
    logger.remove()  # drop loguru's default stderr sink
    logger.add(sys.stdout, format=log_format, level=settings.LOG_LEVEL)

    if settings.LOG_DIR:
        logger.add(
            f'{settings.LOG_DIR}/{{time:YYYY-MM-DD}}.log',
            format=log_format,
            level=settings.LOG_LEVEL,
            rotation='1 day',
            retention='30 days',
            compression='zip',
            enqueue=True,
        )
