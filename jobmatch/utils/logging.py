"""Logging setup for the jobmatch CLI and services."""

import logging
import sys
from typing import TextIO

# Modules log through logging.getLogger(__name__), so everything sits under this name
LOGGER_NAME = "jobmatch"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Chatty dependencies that only get our level when DEBUG is requested
THIRD_PARTY_LOGGERS = ("LiteLLM", "litellm", "httpx", "aiosqlite")

_handler: logging.Handler | None = None


def _resolve_level(level: str | None) -> int:
    return getattr(logging, (level or "INFO").upper(), logging.INFO)


def configure_logging(
    level: str | None = None,
    *,
    stream: TextIO | None = None,
    format_string: str = LOG_FORMAT,
    date_format: str = DATE_FORMAT,
) -> logging.Logger:
    """Configure and return the `jobmatch` logger.

    Installs one stream handler (stderr by default, so JSON written to
    stdout stays clean). Calling again only changes the level.

    Args:
        level: Log level name; defaults to INFO.
        stream: Where log records go.
        format_string: Format string for log messages.
        date_format: Format string for timestamps.

    Returns:
        The configured `jobmatch` logger.
    """
    global _handler

    log_level = _resolve_level(level)
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)

    if _handler is None:
        logger.handlers.clear()
        _handler = logging.StreamHandler(stream or sys.stderr)
        _handler.setFormatter(logging.Formatter(format_string, datefmt=date_format))
        logger.addHandler(_handler)
        logger.propagate = False
    _handler.setLevel(log_level)

    third_party_level = log_level if log_level <= logging.DEBUG else logging.WARNING
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)

    return logger


def reset_logging() -> None:
    """Undo `configure_logging` (used by tests)."""
    global _handler

    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET)

    _handler = None
