"""Centralized logging configuration for the photo ingestion pipeline."""

import os
import sys
import logging
from typing import Optional

ROOT_LOGGER_NAME = "photo-ingest"

FORMATS = {
    "structured": (
        "%(asctime)s | %(name)s | %(levelname)-8s | "
        "%(filename)s:%(lineno)d | %(funcName)s() | %(message)s"
    ),
    "simple": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}
STRUCTURED_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _parse_level(value: str) -> int:
    level = logging.getLevelName(value.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _stdout_handler(format_type: str) -> logging.Handler:
    chosen = os.getenv("LOG_FORMAT", format_type).lower()
    handler = logging.StreamHandler(sys.stdout)
    if chosen == "structured":
        handler.setFormatter(logging.Formatter(FORMATS["structured"], datefmt=STRUCTURED_DATEFMT))
    else:
        handler.setFormatter(logging.Formatter(FORMATS["simple"]))
    return handler


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: Optional[str] = None,
    format_type: str = "structured",
) -> logging.Logger:
    """
    Configure a stdout logger once and return it.

    Args:
        name: Logger name (defaults to "photo-ingest")
        level: Explicit level; applied on every call
        format_type: "structured" (with file, line and function) or "simple"

    Environment Variables:
        LOG_LEVEL: Level used the first time a logger is configured
        LOG_FORMAT: Overrides ``format_type``
    """
    configured = logging.getLogger(name)

    if level:
        configured.setLevel(_parse_level(level))

    # The env level applies only on first setup so that a later
    # set_debug_logging() is not undone.
    if not configured.handlers:
        if not level:
            configured.setLevel(_parse_level(os.getenv("LOG_LEVEL", "INFO")))
        configured.addHandler(_stdout_handler(format_type))

    configured.propagate = False
    return configured


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """
    Get a pipeline logger, nesting short names under "photo-ingest".

    ``get_logger("fetcher")`` and ``get_logger("photo-ingest.fetcher")``
    return the same logger.
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return setup_logger(name)


def set_debug_logging() -> None:
    """Switch the pipeline loggers (and the root logger) to DEBUG."""
    for logger_name in list(logging.root.manager.loggerDict):
        if logger_name == ROOT_LOGGER_NAME or logger_name.startswith(ROOT_LOGGER_NAME + "."):
            logging.getLogger(logger_name).setLevel(logging.DEBUG)
    logging.getLogger().setLevel(logging.DEBUG)


logger = setup_logger()
