"""
Logging setup for the service.

Every module logs through logging.getLogger(__name__). setup_logging() is called
once at startup (FastAPI lifespan) and configures the root logger from LOG_LEVEL
and LOG_FILE: console always, file additionally when LOG_FILE is set.
"""
from __future__ import annotations

import logging
import os
import sys

from handsfree.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str | None = None, log_file: str | None = None) -> None:
    """
    Configure root logger.

    level: DEBUG, INFO, WARNING, ERROR (default: settings.LOG_LEVEL).
    log_file: path to append logs to; empty = console only (default: settings.LOG_FILE).
    """
    settings = get_settings()
    level = level if level is not None else settings.LOG_LEVEL
    log_file = log_file if log_file is not None else settings.LOG_FILE

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(LOG_FORMAT)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.setLevel(getattr(logging, (level or "INFO").upper(), logging.INFO))
