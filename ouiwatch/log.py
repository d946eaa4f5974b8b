"""Centralised logging configuration for ouiwatch."""
from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: int = logging.INFO) -> None:
    """Configure the root ``ouiwatch`` logger.

    Call once during application startup (CLI or web).  Later calls only
    adjust the level; the stderr handler is added a single time.
    """
    logger = logging.getLogger("ouiwatch")
    logger.setLevel(level)
    if logger.handlers:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the ``ouiwatch`` namespace."""
    return logging.getLogger(f"ouiwatch.{name}")
