"""Logging configuration for the application."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import get_config

# Loggers that only ever record failures
ERROR_ONLY = {"error"}


def setup_logger(
    name: str,
    log_file: Optional[str] = None,
    level: Optional[str] = None
) -> logging.Logger:
    """Configure ``name`` once with a stdout handler and, outside production, a rotating file."""
    config = get_config()

    logger = logging.getLogger(name)
    log_level = level or config.logging.level
    logger.setLevel(getattr(logging, log_level.upper()))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(config.logging.format)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Production stdout is collected by the platform
    if log_file and not config.is_production:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=config.logging.max_bytes,
            backupCount=config.logging.backup_count
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get one of the application loggers: ``workflow``, ``ledger``, ``error``,
    ``api`` or ``server``.

    A logger writes to the file configured under ``logging.files.<name>``
    when there is one (``api`` has none).
    """
    config = get_config()
    log_file = getattr(config.logging.files, name, None)
    level = "ERROR" if name in ERROR_ONLY else None
    return setup_logger(name, log_file, level)
