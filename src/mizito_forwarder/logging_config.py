"""Logging configuration shared by the app and uvicorn."""

from __future__ import annotations

import logging
import logging.config
from typing import Any

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def resolve_level(level: str) -> str:
    """Map a config log level (``debug``, ``warn``, ...) to a logging name."""
    name = level.upper()
    if name == "WARN":
        name = "WARNING"
    return name if name in logging.getLevelNamesMapping() else "INFO"


def get_logging_config(level: str = "info") -> dict[str, Any]:
    """Return a ``dictConfig`` mapping for the forwarder and uvicorn."""
    resolved = resolve_level(level)
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": _FORMAT},
            "access": {"format": "%(asctime)s [ACCESS] %(message)s"},
        },
        "handlers": {
            "default": {
                "class": "logging.StreamHandler",
                "formatter": "default",
                "stream": "ext://sys.stdout",
            },
            "access": {
                "class": "logging.StreamHandler",
                "formatter": "access",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {
            "uvicorn": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.error": {"handlers": ["default"], "level": "INFO", "propagate": False},
            "uvicorn.access": {"handlers": ["access"], "level": "WARNING", "propagate": False},
            "httpx": {"handlers": ["default"], "level": "WARNING", "propagate": False},
            "mizito_forwarder": {
                "handlers": ["default"],
                "level": resolved,
                "propagate": False,
            },
        },
        "root": {"level": resolved, "handlers": ["default"]},
    }


def setup_logging(level: str = "info") -> None:
    """Apply :func:`get_logging_config` to the logging system."""
    logging.config.dictConfig(get_logging_config(level))
