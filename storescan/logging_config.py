"""Logging configuration for storescan.

Library modules only create ``logging.getLogger(__name__)`` loggers; hosts
that want storescan's log file call ``setup_logging`` once at startup.
"""

import logging
import os
import sys
from typing import Optional

from .utils.paths import LOG_PATH


def setup_logging(debug: bool = False, log_file: Optional[str] = LOG_PATH) -> logging.Logger:
    """Configure the ``storescan`` logger.

    Args:
        debug: If True, also log to console at DEBUG level
        log_file: Log file path, or None to skip the file handler

    Returns:
        The package logger
    """
    logger = logging.getLogger("storescan")
    logger.setLevel(logging.DEBUG)

    # Clear any existing handlers
    logger.handlers.clear()

    if log_file:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        logger.addHandler(file_handler)

    if debug:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(logging.Formatter("%(levelname)s - %(name)s - %(message)s"))
        logger.addHandler(console_handler)

    return logger
