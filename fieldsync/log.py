"""
Logging setup for the engine.

Library modules import ``logger`` straight from loguru; entry points call
``configure_logging`` once to pick the sink and level.
"""

import sys

from loguru import logger


LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """
    Replace loguru's default handler with a stderr sink at ``level``.

    Args:
        level: Minimum level name (DEBUG, INFO, WARNING, ...)
        log_file: Optional file path for a rotating file sink
    """
    logger.remove()
    logger.add(sys.stderr, level=level.upper(), format=LOG_FORMAT)
    if log_file:
        logger.add(log_file, rotation="50 MB", retention="10 days", level=level.upper())
