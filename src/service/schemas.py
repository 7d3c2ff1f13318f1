"""Pydantic models for the remediation HTTP API."""
from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator

from argus.models import DEFAULT_MAX_FIXES, DEFAULT_PR_TITLE


class CreatePullRequestBody(BaseModel):
    """Request payload for ``POST /repos/{repo_id}/pull-requests``."""

    title: str = Field(default=DEFAULT_PR_TITLE)
    base_branch: Optional[str] = Field(default=None)
    confirm: bool = Field(default=False, description="Open a real pull request instead of a dry run.")
    max_fixes: int = Field(default=DEFAULT_MAX_FIXES)

    @field_validator("title", mode="before")
    @classmethod
    def _default_blank_title(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_PR_TITLE
        return value

    @field_validator("max_fixes", mode="before")
    @classmethod
    def _default_non_positive_cap(cls, value: object) -> object:
        if value is None or (isinstance(value, int) and value <= 0):
            return DEFAULT_MAX_FIXES
        return value


class RemediationResponseModel(BaseModel):
    """Response payload describing the outcome of a remediation run."""

    mode: str
    diff: str
    pr_url: Optional[str] = None
    branch: Optional[str] = None


class ErrorDetail(BaseModel):
    type: str
    message: str
    code: int
    details: Dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    status: str = "error"
    error: ErrorDetail
