"""Application configuration management using Pydantic settings."""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class GitHubAppSettings(BaseModel):
    """Credentials and transport settings for the GitHub App integration."""

    app_id: Optional[str] = Field(
        default=None,
        description="Numeric GitHub App identifier used as the assertion issuer.",
    )
    installation_id: Optional[str] = Field(
        default=None,
        description="Numeric installation identifier the access token is scoped to.",
    )
    private_key_pem: Optional[str] = Field(
        default=None,
        description="RSA private key in PKCS#1 or PKCS#8 PEM encoding.",
    )
    api_base_url: str = Field(
        default="https://api.github.com",
        description="Base URL of the GitHub REST API.",
    )
    api_version: str = Field(
        default="2022-11-28",
        description="Value sent in the X-GitHub-Api-Version header.",
    )
    http_timeout: float = Field(
        default=25.0,
        gt=0,
        description="Timeout in seconds applied to every provider HTTP call.",
    )

    @field_validator("app_id", "installation_id", mode="before")
    @classmethod
    def _strip_identifier(cls, value: object) -> object:
        """Trim whitespace and treat blank identifiers as unset."""

        if isinstance(value, str):
            value = value.strip()
            return value or None
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator("private_key_pem", mode="before")
    @classmethod
    def _expand_escaped_newlines(cls, value: object) -> object:
        """Allow single-line PEM values with literal ``\\n`` sequences."""

        if isinstance(value, str):
            if not value.strip():
                return None
            if "\\n" in value and "\n" not in value:
                return value.replace("\\n", "\n")
        return value


class RemediationSettings(BaseModel):
    """Safety policy and limits for the remediation pipeline."""

    max_repo_mb: int = Field(
        default=350,
        ge=1,
        description="Upper bound on the summed size of regular files in a clone.",
    )
    clone_timeout: float = Field(
        default=180.0,
        gt=0,
        description="Overall timeout in seconds for the shallow clone.",
    )
    default_max_fixes: int = Field(
        default=10,
        ge=1,
        description="Cap applied when a request does not ask for a positive one.",
    )
    pr_body_diff_limit: int = Field(
        default=8000,
        ge=1,
        description="Number of diff characters embedded in the pull request body.",
    )
    branch_prefix: str = Field(
        default="argus/fix-",
        description="Prefix of remediation branch names.",
    )
    bot_name: str = Field(default="argus[bot]", description="Commit author name.")
    bot_email: str = Field(
        default="argus[bot]@users.noreply.github.com",
        description="Commit author email.",
    )
    commit_message: str = Field(default="Argus: apply safe automatic fixes")
    allowed_url_prefix: str = Field(
        default="https://github.com/",
        description="Repository URLs must start with this prefix.",
    )
    required_url_suffix: str = Field(
        default=".git",
        description="Repository URLs must end with this suffix.",
    )


class AppSettings(BaseSettings):
    """Top-level application settings container."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ARGUS_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = Field(
        default="INFO",
        description="Root logger level, as a standard logging level name.",
    )
    github: GitHubAppSettings = Field(default_factory=GitHubAppSettings)
    remediation: RemediationSettings = Field(default_factory=RemediationSettings)

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_log_level(cls, value: object) -> object:
        if isinstance(value, str):
            value = value.strip().upper()
            if value not in _LOG_LEVELS:
                raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        return value


@lru_cache
def get_settings() -> AppSettings:
    """Return the cached application settings instance."""

    return AppSettings()


def reset_settings_cache() -> None:
    """Clear the cached settings so future calls reflect new environment values."""

    get_settings.cache_clear()


__all__ = [
    "GitHubAppSettings",
    "RemediationSettings",
    "AppSettings",
    "get_settings",
    "reset_settings_cache",
]
