"""Logging configuration."""

import logging
import os
import sys

from pydantic import BaseModel


class LogConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    # Outbound HTTP is logged by the model gateway and notifier themselves
    quiet_loggers: list[str] = ["httpx", "httpcore", "uvicorn.access"]


def setup_logging(config: LogConfig | None = None) -> None:
    """Configure the root logger for the service."""
    if config is None:
        config = LogConfig()

    logging.basicConfig(
        level=getattr(logging, config.level.upper()),
        format=config.format,
        datefmt=config.date_format,
        stream=sys.stdout,
        force=True,
    )

    for noisy in config.quiet_loggers:
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str, level: str | None = None) -> logging.Logger:
    """Get a logger for a module.

    Args:
        name: Module name (typically __name__)
        level: Explicit level; defaults to the LOG_LEVEL environment variable

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())
    return logger
