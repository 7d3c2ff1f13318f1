"""Shared helpers for the Argus remediation service."""

from .config import (
    AppSettings,
    GitHubAppSettings,
    RemediationSettings,
    get_settings,
    reset_settings_cache,
)
from .logging import configure_logging, get_logger

__all__ = [
    "AppSettings",
    "GitHubAppSettings",
    "RemediationSettings",
    "configure_logging",
    "get_logger",
    "get_settings",
    "reset_settings_cache",
]
