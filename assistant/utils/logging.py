"""Logging setup for the assistant service.

Module loggers carry no level of their own. ``setup_logging`` sets the level on
the ``assistant`` package logger, and every ``assistant.*`` logger inherits it.
"""

import logging
import sys

from pydantic import BaseModel, Field

PACKAGE_LOGGER = "assistant"


class LogConfig(BaseModel):
    """Logging configuration, usually built from ``Settings.log_level``."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"

    # Libraries that log every request or stream chunk at INFO
    library_levels: dict[str, str] = Field(
        default_factory=lambda: {
            "anthropic": "WARNING",
            "httpx": "WARNING",
            "uvicorn.access": "WARNING",
        }
    )


def setup_logging(config: LogConfig | None = None) -> None:
    """Install the stdout handler and apply the configured levels.

    Safe to call more than once; the latest config wins.
    """
    config = config or LogConfig()
    level = logging.getLevelName(config.level.upper())

    logging.basicConfig(
        level=level,
        format=config.format,
        datefmt=config.date_format,
        stream=sys.stdout,
        force=True,
    )
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)

    for name, library_level in config.library_levels.items():
        logging.getLogger(name).setLevel(library_level.upper())


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module, typically called with ``__name__``."""
    return logging.getLogger(name)
