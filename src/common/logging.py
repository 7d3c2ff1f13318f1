"""Shared logging helpers for the Argus remediation service."""
from __future__ import annotations

import logging
from typing import Optional, Union

from .config import get_settings

_LOGGER_CONFIGURED = False
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def resolve_level(level: Union[int, str, None]) -> int:
    """Translate a level name or number into a :mod:`logging` level.

    ``None`` falls back to ``ARGUS_LOG_LEVEL`` from the application settings.
    """

    if level is None:
        level = get_settings().log_level
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"unknown log level: {level!r}")
    return resolved


def configure_logging(level: Union[int, str, None] = None) -> None:
    """Configure the root logger if it has not been configured yet."""

    global _LOGGER_CONFIGURED
    if _LOGGER_CONFIGURED:
        return

    logging.basicConfig(level=resolve_level(level), format=LOG_FORMAT)
    _LOGGER_CONFIGURED = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module-level logger configured with the shared settings."""

    configure_logging()
    return logging.getLogger(name if name else "argus")


__all__ = ["configure_logging", "get_logger", "resolve_level"]
