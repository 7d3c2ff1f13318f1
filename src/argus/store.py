"""Storage seam for repositories, findings and remediation records."""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Protocol, Sequence

from argus.errors import RepositoryNotFound
from argus.models import Finding, RemediationRecord


class RemediationStore(Protocol):
    """Operations the remediation service needs from the backing data store."""

    def get_repository_url(self, repo_id: str) -> str:
        """Return the clone URL of ``repo_id`` or raise :class:`RepositoryNotFound`."""

    def recent_findings(self, repo_id: str, limit: int) -> List[Finding]:
        """Return at most ``limit`` findings for ``repo_id``, most recent first."""

    def record_remediation(self, record: RemediationRecord) -> None:
        """Persist the outcome of a remediation request."""


class InMemoryStore:
    """In-memory store. Findings are kept in insertion order, newest last."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._repos: Dict[str, str] = {}
        self._findings: Dict[str, List[Finding]] = {}
        self._records: List[RemediationRecord] = []

    def add_repository(self, repo_id: str, url: str) -> None:
        with self._lock:
            self._repos[repo_id] = url

    def add_findings(self, repo_id: str, findings: Sequence[Finding]) -> None:
        with self._lock:
            self._findings.setdefault(repo_id, []).extend(findings)

    def get_repository_url(self, repo_id: str) -> str:
        with self._lock:
            url = self._repos.get(repo_id)
        if url is None:
            raise RepositoryNotFound("repo not found", {"repo_id": repo_id})
        return url

    def recent_findings(self, repo_id: str, limit: int) -> List[Finding]:
        if limit <= 0:
            return []
        with self._lock:
            stored = list(self._findings.get(repo_id, []))
        return list(reversed(stored))[:limit]

    def record_remediation(self, record: RemediationRecord) -> None:
        with self._lock:
            self._records.append(record)

    def records(self, repo_id: Optional[str] = None) -> List[RemediationRecord]:
        with self._lock:
            records = list(self._records)
        if repo_id is None:
            return records
        return [record for record in records if record.repo_id == repo_id]


__all__ = ["InMemoryStore", "RemediationStore"]
