"""Logging setup for the API process and the Celery worker.

Modules log through ``logging.getLogger(__name__)``; this module only
attaches handlers to the ``campus`` logger tree once per process, with
ISO 8601 timestamps and optional size-based rotation to a file.
"""

import logging
import logging.handlers
import os
from typing import Optional

from campus.core.config import get_settings

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


def setup_logging(
    name: str = "campus",
    level: Optional[str] = None,
    log_dir: Optional[str] = None,
    file_logging: Optional[bool] = None,
    console_logging: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Configure the package logger.

    Args:
        name: Logger name; child loggers created with ``__name__`` inherit it
        level: Logging level, defaults to ``settings.log_level``
        log_dir: Directory for the rotating log file, defaults to ``settings.log_dir``
        file_logging: Enable file logging, defaults to ``settings.log_to_file``
        console_logging: Enable console logging
        max_bytes: Maximum log file size before rotation
        backup_count: Number of backup log files to keep

    Returns:
        Configured logger instance
    """
    settings = get_settings()
    level = level or settings.log_level
    log_dir = log_dir or settings.log_dir
    if file_logging is None:
        file_logging = settings.log_to_file

    logger = logging.getLogger(name)

    level_upper = level.upper()
    if not hasattr(logging, level_upper):
        raise ValueError(
            f"Invalid log level: {level}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )
    logger.setLevel(getattr(logging, level_upper))

    # Prevent duplicate handlers on re-import (uvicorn reload, worker forks)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(DEFAULT_FORMAT, datefmt=DEFAULT_DATE_FORMAT)

    if file_logging:
        os.makedirs(log_dir, exist_ok=True)
        log_file = os.path.join(log_dir, f"{name}.log")
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console_logging:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
