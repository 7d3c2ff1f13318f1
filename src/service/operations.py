"""Remediation pipeline: clone, plan, patch, diff and optionally open a pull request."""

from __future__ import annotations

import json
import logging
import os
import stat
import tempfile
import threading
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Sequence, Tuple

from argus.errors import (
    OperationCancelled,
    PolicyViolation,
    RemediationError,
)
from argus.models import (
    DEFAULT_PR_TITLE,
    MODE_CREATED,
    MODE_DRY_RUN,
    STATUS_FAILED,
    ApplyResult,
    Finding,
    ManualItem,
    Plan,
    RemediationRecord,
    RemediationRequest,
    RemediationResponse,
)
from argus.store import RemediationStore
from common.config import AppSettings, RemediationSettings, get_settings
from githubapp.client import GitHubAppClient, parse_github_url
from remediation.applier import apply_plan
from remediation.planner import build_plan

from .vcs import GitCLI, VersionControl, load_diff, sanitize_remote

LOGGER = logging.getLogger("argus.service.operations")

SENTINEL_DIFF = "# No safe automatic changes available\n"
PR_BODY_INTRO = "Automated safe fixes generated by Argus."
TRUNCATION_MARKER = "\n... (truncated)"

SYNTHETIC_FINDING = Finding(tool="policy", title="Ensure .env ignored", file_path=".gitignore")

GitHubClientFactory = Callable[..., GitHubAppClient]

_REPO_LOCKS: Dict[str, threading.Lock] = {}
_REPO_LOCKS_GUARD = threading.Lock()


def repository_lock(repo_id: str) -> threading.Lock:
    """Return the process-wide advisory lock for ``repo_id``."""

    with _REPO_LOCKS_GUARD:
        return _REPO_LOCKS.setdefault(repo_id, threading.Lock())


def enforce_url_policy(repo_url: str, settings: RemediationSettings) -> None:
    """Reject repository URLs outside the allowed host and archive suffix."""

    normalized = repo_url.strip().lower()
    if not normalized.startswith(settings.allowed_url_prefix.lower()) or not normalized.endswith(
        settings.required_url_suffix.lower()
    ):
        raise PolicyViolation(
            "only github.com .git repos are supported",
            {"url": sanitize_remote(repo_url.strip())},
        )


def repository_size(root: Path) -> int:
    """Sum the sizes of all regular files below ``root`` without following symlinks."""

    total = 0
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            try:
                info = os.lstat(os.path.join(dirpath, name))
            except FileNotFoundError:
                continue
            if stat.S_ISREG(info.st_mode):
                total += info.st_size
    return total


def enforce_size_cap(root: Path, max_mb: int) -> int:
    size = repository_size(root)
    limit = max_mb * 1024 * 1024
    if size > limit:
        raise PolicyViolation("repo exceeds size cap", {"size_bytes": size, "limit_bytes": limit})
    LOGGER.info("Repository size %s bytes is within the %s MiB cap", size, max_mb)
    return size


def generate_dry_run_diff(
    repo_dir: Path | str,
    findings: Sequence[Finding],
    max_fixes: int,
    vcs: Optional[VersionControl] = None,
) -> Tuple[str, Plan, ApplyResult]:
    """Plan, apply and diff against an existing working copy."""

    plan = build_plan(findings, max_fixes)
    LOGGER.info(
        "Plan built from %s finding(s): %s action(s), %s manual item(s)",
        len(findings),
        len(plan.actions),
        len(plan.manual),
    )
    applied = apply_plan(repo_dir, plan)
    diff_text = load_diff(repo_dir, vcs)
    return diff_text, plan, applied


def build_pr_body(diff_text: str, manual: Iterable[ManualItem], limit: int = 8000) -> str:
    """Render the pull request description: manual items as JSON plus a diff preview."""

    manual_items = [item.to_dict() for item in manual]
    manual_text = ""
    if manual_items:
        manual_text = "\n\n## Manual items\n```json\n" + json.dumps(manual_items, indent=2) + "\n```"
    if len(diff_text) > limit:
        diff_text = diff_text[:limit] + TRUNCATION_MARKER
    return f"{PR_BODY_INTRO}{manual_text}\n\n## Diff preview\n```diff\n{diff_text}\n```"


def new_branch_name(prefix: str) -> str:
    return f"{prefix}{int(time.time())}-{uuid.uuid4().hex[:6]}"


def _check_cancelled(cancel_event: Optional[threading.Event], step: str) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelled(f"request cancelled before {step}")


@dataclass
class _Progress:
    """What a request has produced so far, for the failure record."""

    diff: str = ""
    branch: Optional[str] = None


class RemediationService:
    """Run one remediation request end to end.

    Each call owns a fresh temporary clone that is removed on every exit
    path. Unconfirmed requests never touch provider credentials. Confirmed
    requests authenticate as the GitHub App, push a new branch and open a
    pull request; remote side effects that happened before a failure are not
    rolled back.
    """

    def __init__(
        self,
        store: RemediationStore,
        *,
        settings: Optional[AppSettings] = None,
        vcs: Optional[VersionControl] = None,
        github_factory: Optional[GitHubClientFactory] = None,
    ) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self.vcs = vcs or GitCLI()
        self.github_factory = github_factory or GitHubAppClient.from_settings

    def create(
        self,
        request: RemediationRequest,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> RemediationResponse:
        """Execute ``request`` and persist exactly one record of its outcome."""

        LOGGER.info(
            "Starting remediation: repo=%s confirm=%s max_fixes=%s requested_by=%s",
            request.repo_id,
            request.confirm,
            request.max_fixes,
            request.requested_by or "unknown",
        )
        progress = _Progress()
        try:
            response = self._execute(request, progress, cancel_event)
        except RemediationError as exc:
            LOGGER.error("Remediation for %s failed: %s", request.repo_id, exc.message)
            self._persist(request, STATUS_FAILED, progress, error=exc.message)
            raise
        except OSError as exc:
            error = RemediationError(f"working copy update failed: {exc.strerror or exc}")
            LOGGER.error("Remediation for %s failed: %s", request.repo_id, error.message)
            self._persist(request, STATUS_FAILED, progress, error=error.message)
            raise error from exc

        self._persist(request, response.mode, progress, pr_url=response.pr_url)
        LOGGER.info("Remediation for %s finished in mode %s", request.repo_id, response.mode)
        return response

    def _persist(
        self,
        request: RemediationRequest,
        status: str,
        progress: _Progress,
        *,
        pr_url: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        self.store.record_remediation(
            RemediationRecord(
                repo_id=request.repo_id,
                status=status,
                diff_text=progress.diff,
                branch=progress.branch,
                pr_url=pr_url,
                requested_by=request.requested_by,
                error=error,
            )
        )

    def _execute(
        self,
        request: RemediationRequest,
        progress: _Progress,
        cancel_event: Optional[threading.Event],
    ) -> RemediationResponse:
        policy = self.settings.remediation

        repo_url = self.store.get_repository_url(request.repo_id)
        enforce_url_policy(repo_url, policy)

        max_fixes = request.max_fixes if request.max_fixes > 0 else policy.default_max_fixes
        findings = self.store.recent_findings(request.repo_id, max_fixes)
        if not findings:
            LOGGER.info("No findings stored for %s; using the .env baseline finding", request.repo_id)
            findings = [SYNTHETIC_FINDING]

        with tempfile.TemporaryDirectory(prefix="argus-pr-") as tmpdir:
            repo_dir = Path(tmpdir) / "repo"
            _check_cancelled(cancel_event, "clone")
            self.vcs.clone(repo_url, repo_dir, timeout=policy.clone_timeout, cancel_event=cancel_event)
            enforce_size_cap(repo_dir, policy.max_repo_mb)

            _check_cancelled(cancel_event, "patching")
            diff_text, _plan, applied = generate_dry_run_diff(repo_dir, findings, max_fixes, self.vcs)
            if not diff_text.strip():
                diff_text = SENTINEL_DIFF
            progress.diff = diff_text

            if not request.confirm:
                return RemediationResponse(mode=MODE_DRY_RUN, diff=diff_text)

            with repository_lock(request.repo_id):
                pr_url, branch = self._open_pull_request(
                    request, repo_url, repo_dir, diff_text, applied, progress, cancel_event
                )
            return RemediationResponse(mode=MODE_CREATED, diff=diff_text, pr_url=pr_url, branch=branch)

    def _open_pull_request(
        self,
        request: RemediationRequest,
        repo_url: str,
        repo_dir: Path,
        diff_text: str,
        applied: ApplyResult,
        progress: _Progress,
        cancel_event: Optional[threading.Event],
    ) -> Tuple[str, str]:
        policy = self.settings.remediation
        github = self.github_factory(self.settings.github, cancel_event=cancel_event)
        token = github.installation_token()

        try:
            owner, repo = parse_github_url(repo_url)
        except ValueError as exc:
            raise PolicyViolation(str(exc), {"url": sanitize_remote(repo_url)}) from exc

        base = (request.base_branch or "").strip()
        if not base:
            base = github.get_default_branch(owner, repo, token)
        sha = github.get_branch_sha(owner, repo, base, token)

        branch = new_branch_name(policy.branch_prefix)
        github.create_ref(owner, repo, f"refs/heads/{branch}", sha, token)
        progress.branch = branch

        try:
            self.vcs.checkout_new_branch(repo_dir, branch)
            self.vcs.configure_identity(repo_dir, policy.bot_name, policy.bot_email)
            self.vcs.stage_all(repo_dir)
            self.vcs.commit(repo_dir, policy.commit_message)
            _check_cancelled(cancel_event, "push")
            self.vcs.push(repo_dir, repo_url, branch, token, cancel_event=cancel_event)

            body = build_pr_body(diff_text, applied.manual, policy.pr_body_diff_limit)
            title = request.title.strip() or DEFAULT_PR_TITLE
            pull_request = github.create_pull_request(owner, repo, title, branch, base, body, token)
        except RemediationError:
            LOGGER.error("Remote branch %s on %s/%s is left behind after the failure", branch, owner, repo)
            raise

        return pull_request.url, branch


__all__ = [
    "PR_BODY_INTRO",
    "SENTINEL_DIFF",
    "SYNTHETIC_FINDING",
    "RemediationService",
    "build_pr_body",
    "enforce_size_cap",
    "enforce_url_policy",
    "generate_dry_run_diff",
    "new_branch_name",
    "repository_lock",
    "repository_size",
]
