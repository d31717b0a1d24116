# -*- coding: utf-8 -*-
"""
Logging utilities for the visual harness.
Provides consistent logging setup for the CLI entry points.
"""
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def configure_root_logging(logs_dir: Optional[Path], log_level: str = "INFO",
                           filename: str = "harness.log") -> None:
    """
    Configure the root logger with a console handler and, when logs_dir is
    given, a rotating file handler under it.

    Examples:
        >>> configure_root_logging(Path("data/logs"), "DEBUG")
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers = [console_handler]

    if logs_dir is not None:
        logs_dir = Path(logs_dir)
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            logs_dir / filename,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)


def get_log_level_from_env(default: str = "INFO") -> str:
    """
    Get logging level from environment variables.

    Environment Variables:
        LOG_LEVEL: Preferred log level
        HARNESS_LOG_LEVEL: Alternative log level variable
    """
    log_level = os.getenv("LOG_LEVEL") or os.getenv("HARNESS_LOG_LEVEL") or default
    return log_level.upper()
