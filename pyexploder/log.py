"""Logging setup shared by the bootstrap and the command line."""

import logging
import sys


LOGGER_NAME: str = "pyexploder"

# Severity and logical origin (module@function) on every line.
LOG_FORMAT: str = "[%(levelname)s:%(module)s@%(funcName)s] - %(message)s"


def get_logger(logger: logging.Logger | None = None) -> logging.Logger:
    """Return ``logger`` or the package logger when ``None``."""

    if logger is None:
        return logging.getLogger(LOGGER_NAME)
    return logger


def configure_logging(*, debug: bool = False, level: int | None = None) -> logging.Logger:
    """Configure the pyexploder logger.

    :param debug: Enable debug output (ignored when ``level`` is given).
    :param level: Explicit logging level.
    :returns: Configured logger.
    """

    if level is None:
        level = logging.DEBUG if debug is True else logging.INFO

    logger: logging.Logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    handler: logging.Handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    logger.handlers.clear()
    logger.addHandler(handler)
    return logger
