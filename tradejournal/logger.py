"""
logger.py
---------

Central loguru configuration. Every module imports ``log`` from here so
the sinks are configured in exactly one place.
"""

import sys
from typing import Optional

from loguru import logger

_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    """(Re)configure the loguru sinks.

    The default handler is dropped and replaced by a stderr sink at
    ``level``. When ``log_file`` is given, errors are also written to a
    rotating file.
    """
    logger.remove()
    logger.add(sys.stderr, format=_FORMAT, level=level.upper())
    if log_file:
        logger.add(
            log_file,
            rotation="10 MB",
            retention="10 days",
            level="ERROR",
        )


log = logger
