"""
Exception taxonomy for the remediation pipeline.

Every error that aborts a request derives from :class:`RemediationError` so
callers can render a structured failure without inspecting messages.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class RemediationError(Exception):
    """Base exception for all remediation failures."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.__class__.__name__, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class PolicyViolation(RemediationError):
    """Raised for disallowed repository URLs or oversized repositories."""


class RepositoryNotFound(RemediationError):
    """Raised when the requested repository is unknown to the store."""


class AuthFailure(RemediationError):
    """Raised for missing or invalid credentials and failed token exchanges."""


class ProviderAPIFailure(RemediationError):
    """Raised when the code-hosting provider answers with a non-success status."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.status = status
        merged = dict(details or {})
        if status is not None:
            merged.setdefault("status", status)
        super().__init__(message, merged)


class LocalVCSFailure(RemediationError):
    """Raised when a local git operation (clone, commit, push, ...) fails."""


class NoSafeChange(RemediationError):
    """Raised when a plan produced nothing applicable. Never fatal to a request."""


class OperationCancelled(RemediationError):
    """Raised when the caller cancels an in-flight request."""


__all__ = [
    "AuthFailure",
    "LocalVCSFailure",
    "NoSafeChange",
    "OperationCancelled",
    "PolicyViolation",
    "ProviderAPIFailure",
    "RemediationError",
    "RepositoryNotFound",
]
