"""Data models shared by the planner, applier and remediation service."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

DEFAULT_PR_TITLE = "Argus: Fix findings"
DEFAULT_MAX_FIXES = 10

MODE_DRY_RUN = "dry-run"
MODE_CREATED = "created"
STATUS_FAILED = "failed"


@dataclass(frozen=True)
class Finding:
    """One issue reported by an external scanning adapter."""

    tool: str
    title: str
    file_path: str = ""
    line_start: int = 0

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "Finding":
        """Build a finding from a loosely-typed mapping (JSON, DB row)."""

        try:
            line = int(payload.get("line_start") or 0)
        except (TypeError, ValueError):
            line = 0
        return cls(
            tool=str(payload.get("tool") or ""),
            title=str(payload.get("title") or ""),
            file_path=str(payload.get("file_path") or ""),
            line_start=line,
        )

    @classmethod
    def from_iterable(cls, items: Iterable[Mapping[str, Any]]) -> List["Finding"]:
        return [cls.from_mapping(item) for item in items]


class FixActionKind(str, Enum):
    """Allowlisted automatic fix types."""

    SECRET_REDACTION = "secret_redaction"
    GITIGNORE_ENV = "gitignore_env"


@dataclass(frozen=True)
class FixAction:
    """A single automatic mutation of the working copy."""

    kind: FixActionKind
    file_path: str
    line_start: int = 0
    description: str = ""

    def to_dict(self) -> Dict[str, object]:
        return {
            "kind": self.kind.value if isinstance(self.kind, FixActionKind) else str(self.kind),
            "file_path": self.file_path,
            "line_start": self.line_start,
            "description": self.description,
        }


@dataclass(frozen=True)
class ManualItem:
    """A finding or action that was excluded from automation."""

    reason: str
    title: str
    file: str

    def to_dict(self) -> Dict[str, str]:
        return {"reason": self.reason, "title": self.title, "file": self.file}


@dataclass
class Plan:
    """Automatic actions plus the items that need a human."""

    actions: List[FixAction] = field(default_factory=list)
    manual: List[ManualItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "actions": [action.to_dict() for action in self.actions],
            "manual": [item.to_dict() for item in self.manual],
        }


@dataclass
class ApplyResult:
    """What the applier actually changed, and what it handed back."""

    applied: List[FixAction] = field(default_factory=list)
    manual: List[ManualItem] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "applied": [action.to_dict() for action in self.applied],
            "manual": [item.to_dict() for item in self.manual],
        }


@dataclass
class RemediationRequest:
    """Caller input for a single remediation run."""

    repo_id: str
    title: str = DEFAULT_PR_TITLE
    base_branch: Optional[str] = None
    confirm: bool = False
    max_fixes: int = DEFAULT_MAX_FIXES
    requested_by: str = ""


@dataclass
class RemediationResponse:
    """Synchronous result returned to the caller."""

    mode: str
    diff: str
    pr_url: Optional[str] = None
    branch: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"mode": self.mode, "diff": self.diff}
        if self.pr_url:
            payload["pr_url"] = self.pr_url
        if self.branch:
            payload["branch"] = self.branch
        return payload


@dataclass
class RemediationRecord:
    """Persisted outcome of one remediation request."""

    repo_id: str
    status: str
    diff_text: str
    branch: Optional[str] = None
    pr_url: Optional[str] = None
    requested_by: str = ""
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        return {
            "repo_id": self.repo_id,
            "status": self.status,
            "branch": self.branch,
            "pr_url": self.pr_url,
            "diff_text": self.diff_text,
            "requested_by": self.requested_by,
            "error": self.error,
        }


__all__ = [
    "DEFAULT_MAX_FIXES",
    "DEFAULT_PR_TITLE",
    "MODE_CREATED",
    "MODE_DRY_RUN",
    "STATUS_FAILED",
    "ApplyResult",
    "Finding",
    "FixAction",
    "FixActionKind",
    "ManualItem",
    "Plan",
    "RemediationRecord",
    "RemediationRequest",
    "RemediationResponse",
]
