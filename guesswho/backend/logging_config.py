"""Process-wide logging setup for the backend."""

from __future__ import annotations

import logging
import sys

LOGGER_NAME = "guesswho"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level_name: str = "INFO") -> logging.Logger:
    """Attach a single stderr handler to the package logger.

    Safe to call more than once; existing handlers are replaced.
    """
    level = getattr(logging, level_name.upper(), logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    return logger
