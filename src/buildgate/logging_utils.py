"""Logging setup for the command line."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOGGER_NAME = "buildgate"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def configure_logging(*, verbose: bool = False, log_file: Optional[Path] = None) -> logging.Logger:
    """
    Configure the package logger: stderr at INFO (DEBUG when verbose), plus
    an optional UTF-8 log file that always receives DEBUG.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
        logger.debug("Log file: %s", log_file)

    logger.propagate = False
    return logger
