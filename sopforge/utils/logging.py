"""Logging setup shared by every sopforge module."""

import logging
import os
import sys
from typing import Optional

ROOT_LOGGER_NAME = "sopforge"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _level(level: Optional[str]) -> int:
    name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    return getattr(logging, name, logging.INFO)


def _root_logger() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER_NAME)
    # One stdout handler for the whole package; module loggers propagate to it
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(handler)
        root.setLevel(_level(None))
    return root


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get a logger under the ``sopforge`` hierarchy.

    Args:
        name: Logger name, normally ``__name__`` of the calling module
        level: Optional per-module override (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        logging.Logger: Logger whose records reach the package handler
    """
    root = _root_logger()
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    logger = logging.getLogger(name) if name != ROOT_LOGGER_NAME else root
    if level:
        logger.setLevel(_level(level))
    return logger


def set_log_level(level: str) -> None:
    """Apply the configured level (``LOG_LEVEL``) to the whole package."""
    _root_logger().setLevel(_level(level))
