"""Argus automated remediation: shared models, errors and storage seam."""
from __future__ import annotations

from .errors import (
    AuthFailure,
    LocalVCSFailure,
    NoSafeChange,
    OperationCancelled,
    PolicyViolation,
    ProviderAPIFailure,
    RemediationError,
    RepositoryNotFound,
)
from .models import (
    ApplyResult,
    Finding,
    FixAction,
    FixActionKind,
    ManualItem,
    Plan,
    RemediationRecord,
    RemediationRequest,
    RemediationResponse,
)
from .store import InMemoryStore, RemediationStore

__all__ = [
    "ApplyResult",
    "AuthFailure",
    "Finding",
    "FixAction",
    "FixActionKind",
    "InMemoryStore",
    "LocalVCSFailure",
    "ManualItem",
    "NoSafeChange",
    "OperationCancelled",
    "Plan",
    "PolicyViolation",
    "ProviderAPIFailure",
    "RemediationError",
    "RemediationRecord",
    "RemediationRequest",
    "RemediationResponse",
    "RemediationStore",
    "RepositoryNotFound",
]
