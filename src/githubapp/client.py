"""GitHub REST API client scoped to one App installation."""

from __future__ import annotations

import base64
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote

from argus.errors import AuthFailure, ProviderAPIFailure
from common.config import GitHubAppSettings

from .auth import build_app_assertion, exchange_installation_token
from .transport import request_json

LOGGER = logging.getLogger("argus.githubapp.client")

GITHUB_URL_PREFIX = "https://github.com/"


def parse_github_url(raw: str) -> Tuple[str, str]:
    """Return ``(owner, repo)`` for an ``https://github.com/owner/repo(.git)`` URL."""

    value = raw.strip()
    if value.lower().startswith(GITHUB_URL_PREFIX):
        value = value[len(GITHUB_URL_PREFIX):]
    parts = value.split("/")
    if len(parts) < 2:
        raise ValueError("invalid github url")
    owner = parts[0].strip()
    repo = parts[1].strip()
    if repo.endswith(".git"):
        repo = repo[:-4]
    if not owner or not repo:
        raise ValueError("invalid github url")
    return owner, repo


def validate_app_ids(app_id: Optional[str], installation_id: Optional[str]) -> None:
    """Reject App or installation identifiers that are not integers."""

    if not (app_id or "").isdigit():
        raise AuthFailure("GitHub App id must be numeric")
    if not (installation_id or "").isdigit():
        raise AuthFailure("GitHub installation id must be numeric")


@dataclass
class PullRequest:
    url: str
    number: Optional[int] = None


class GitHubAppClient:
    """Thin wrapper over the GitHub endpoints the remediation flow needs.

    Every call takes the installation token explicitly; the client never
    caches it.
    """

    def __init__(
        self,
        settings: GitHubAppSettings,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        self.settings = settings
        self.cancel_event = cancel_event
        self.base_url = settings.api_base_url.rstrip("/")

    @classmethod
    def from_settings(
        cls,
        settings: GitHubAppSettings,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> "GitHubAppClient":
        """Build a client, failing fast when App credentials are missing or malformed."""

        if not settings.app_id or not settings.installation_id or not settings.private_key_pem:
            raise AuthFailure("missing github app credentials")
        validate_app_ids(settings.app_id, settings.installation_id)
        return cls(settings, cancel_event=cancel_event)

    def installation_token(self) -> str:
        assertion = build_app_assertion(str(self.settings.app_id), str(self.settings.private_key_pem))
        return exchange_installation_token(
            assertion,
            str(self.settings.installation_id),
            api_base_url=self.base_url,
            api_version=self.settings.api_version,
            timeout=self.settings.http_timeout,
            cancel_event=self.cancel_event,
        )

    def _call(self, method: str, path: str, token: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        return request_json(
            method,
            f"{self.base_url}{path}",
            bearer=token,
            payload=payload,
            timeout=self.settings.http_timeout,
            api_version=self.settings.api_version,
            cancel_event=self.cancel_event,
        )

    def get_default_branch(self, owner: str, repo: str, token: str) -> str:
        data = self._call("GET", f"/repos/{owner}/{repo}", token)
        branch = data.get("default_branch") if isinstance(data, dict) else None
        if not branch:
            raise ProviderAPIFailure("default branch missing")
        return str(branch)

    def get_branch_sha(self, owner: str, repo: str, branch: str, token: str) -> str:
        data = self._call("GET", f"/repos/{owner}/{repo}/git/ref/heads/{quote(branch, safe='/')}", token)
        sha = (data.get("object") or {}).get("sha") if isinstance(data, dict) else None
        if not sha:
            raise ProviderAPIFailure("branch SHA missing")
        return str(sha)

    def create_ref(self, owner: str, repo: str, ref: str, sha: str, token: str) -> None:
        self._call("POST", f"/repos/{owner}/{repo}/git/refs", token, {"ref": ref, "sha": sha})
        LOGGER.info("Created ref %s on %s/%s at %s", ref, owner, repo, sha[:7])

    def create_or_update_content(
        self,
        owner: str,
        repo: str,
        path: str,
        message: str,
        content: bytes | str,
        branch: str,
        token: str,
        *,
        file_sha: Optional[str] = None,
    ) -> Dict[str, Any]:
        raw = content.encode("utf-8") if isinstance(content, str) else content
        body: Dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(raw).decode("ascii"),
            "branch": branch,
        }
        if file_sha:
            body["sha"] = file_sha
        data = self._call("PUT", f"/repos/{owner}/{repo}/contents/{quote(path, safe='/')}", token, body)
        return data if isinstance(data, dict) else {}

    def create_pull_request(
        self,
        owner: str,
        repo: str,
        title: str,
        head: str,
        base: str,
        body: str,
        token: str,
    ) -> PullRequest:
        data = self._call(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            token,
            {"title": title, "head": head, "base": base, "body": body},
        )
        if not isinstance(data, dict):
            data = {}
        url = str(data.get("html_url") or "")
        number = data.get("number")
        LOGGER.info("Pull request created: %s (number=%s)", url, number)
        return PullRequest(url=url, number=int(number) if number is not None else None)

    def create_issue_comment(self, owner: str, repo: str, number: int, comment: str, token: str) -> None:
        self._call("POST", f"/repos/{owner}/{repo}/issues/{number}/comments", token, {"body": comment})


__all__ = [
    "GitHubAppClient",
    "PullRequest",
    "parse_github_url",
    "validate_app_ids",
]
