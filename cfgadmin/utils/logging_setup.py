"""Logging configuration for cfgadmin tools."""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_level: str | None = None, log_file: str | None = None) -> None:
    """Configure the root logger.

    Args:
        log_level: Level name; defaults to the ``LOG_LEVEL`` environment variable, then INFO.
        log_file: Optional path of a rotating log file, in addition to the console.
    """
    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "INFO")
    log_level = log_level.upper()

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        handlers.append(RotatingFileHandler(log_file, maxBytes=1024 * 1024, backupCount=3))

    logging.basicConfig(
        level=logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        datefmt=DATE_FORMAT,
    )

    root_logger = logging.getLogger()
    level = logging.getLevelName(log_level)
    if isinstance(level, int):
        root_logger.setLevel(level)
    else:
        root_logger.setLevel(logging.INFO)
        logging.warning(f"Invalid LOG_LEVEL: {log_level}. Using INFO instead.")
