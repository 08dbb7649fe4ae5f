"""
Logging setup for Melodi.

Modules log through logging.getLogger(__name__); this module attaches a
RichHandler to the package logger so records share the console's styling.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

from melodi.config import LogLevel

PACKAGE_LOGGER = "melodi"

_LEVELS: dict[LogLevel, int] = {
    LogLevel.ERROR: logging.ERROR,
    LogLevel.WARNING: logging.WARNING,
    LogLevel.INFO: logging.INFO,
    LogLevel.DEBUG: logging.DEBUG,
}


def configure_logging(level: LogLevel | str, console: Console | None = None) -> logging.Logger:
    """
    Configure the melodi logger.

    Args:
        level: LogLevel (or its string value); "none" silences the logger
        console: Rich Console to write to (stderr console if not provided)

    Returns:
        The configured package logger
    """
    level = LogLevel(level)
    logger = logging.getLogger(PACKAGE_LOGGER)

    for handler in list(logger.handlers):
        if isinstance(handler, (RichHandler, logging.NullHandler)):
            logger.removeHandler(handler)

    if level == LogLevel.NONE:
        logger.addHandler(logging.NullHandler())
        logger.setLevel(logging.CRITICAL + 1)
        logger.propagate = False
        return logger

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("[%(name)s] %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(_LEVELS[level])
    logger.propagate = False
    return logger
