"""
Logging setup for permguard.

Library modules only create loggers (logging.getLogger(__name__)); nothing
is configured on import. Applications, including the permguard CLI, call
configure_logging() once.

Environment:
    PERMGUARD_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL (default WARNING)
"""

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

VALID_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def resolve_level(level: str | None = None) -> int:
    """Map a level name (or PERMGUARD_LOG_LEVEL) to a logging level."""
    name = (level or os.getenv("PERMGUARD_LOG_LEVEL", "WARNING")).upper()
    return VALID_LEVELS.get(name, logging.WARNING)


def configure_logging(level: str | None = None, rich: bool = True) -> logging.Logger:
    """
    Attach a handler to the "permguard" logger.

    Args:
        level: Level name; falls back to PERMGUARD_LOG_LEVEL
        rich: Use Rich's console handler instead of a plain stream handler

    Returns:
        The configured package logger
    """
    logger = logging.getLogger("permguard")
    logger.setLevel(resolve_level(level))

    for existing in list(logger.handlers):
        logger.removeHandler(existing)

    if rich:
        handler: logging.Handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logger.addHandler(handler)
    logger.propagate = False
    return logger
