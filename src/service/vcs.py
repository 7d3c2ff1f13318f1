"""Local git operations on a remediation working copy.

The remediation service talks to git only through :class:`VersionControl`, so
it can be exercised against an in-memory fake. :class:`GitCLI` is the real
implementation and shells out to the ``git`` binary.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Sequence
from urllib.parse import quote, urlparse, urlunparse

from argus.errors import LocalVCSFailure, NoSafeChange, OperationCancelled

LOGGER = logging.getLogger("argus.service.vcs")

_POLL_INTERVAL = 0.2
_NOTHING_TO_COMMIT = ("nothing to commit", "nothing added to commit")


def _format_command(command: Sequence[str]) -> str:
    """Return a shell-quoted representation of ``command`` for logging."""

    return " ".join(shlex.quote(part) for part in command)


def sanitize_remote(remote_url: str | None) -> str:
    """Drop any userinfo component from ``remote_url`` before logging it."""

    if not remote_url:
        return ""

    parsed = urlparse(remote_url)
    if "@" not in parsed.netloc:
        return remote_url

    host = parsed.netloc.split("@", 1)[1]
    return urlunparse((parsed.scheme, host, parsed.path, parsed.params, parsed.query, parsed.fragment))


def authenticated_remote(repo_url: str, token: str) -> str:
    """Embed an installation token into an HTTPS remote URL."""

    parsed = urlparse(repo_url)
    if parsed.scheme.lower() != "https":
        raise LocalVCSFailure("authenticated push requires an https remote")
    netloc = parsed.netloc.split("@", 1)[-1]
    credentials = f"x-access-token:{quote(token, safe='')}"
    return urlunparse(
        (parsed.scheme, f"{credentials}@{netloc}", parsed.path, parsed.params, parsed.query, parsed.fragment)
    )


def _scrub(text: str, secrets: Sequence[str]) -> str:
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    return text


def _run_subprocess(
    command: List[str],
    *,
    cwd: Optional[Path] = None,
    timeout: Optional[float] = None,
    cancel_event: Optional[threading.Event] = None,
    env: Optional[Dict[str, str]] = None,
) -> subprocess.CompletedProcess[str]:
    """Execute ``command`` and capture its output.

    Interactive credential prompts are disabled. The process is killed when
    ``timeout`` elapses (:class:`LocalVCSFailure`) or ``cancel_event`` is set
    (:class:`OperationCancelled`).
    """

    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelled("request cancelled before running git")

    process_env = os.environ.copy()
    process_env["GIT_TERMINAL_PROMPT"] = "0"
    if env:
        process_env.update(env)

    deadline = time.monotonic() + timeout if timeout is not None else None
    with subprocess.Popen(
        command,
        cwd=str(cwd) if cwd is not None else None,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        stdin=subprocess.DEVNULL,
        text=True,
        env=process_env,
    ) as process:
        while True:
            wait = _POLL_INTERVAL
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    process.kill()
                    process.communicate()
                    raise LocalVCSFailure(f"{command[0]} {command[1]} timed out after {timeout:g}s")
                wait = min(wait, remaining)
            try:
                stdout, stderr = process.communicate(timeout=wait)
                break
            except subprocess.TimeoutExpired:
                if cancel_event is not None and cancel_event.is_set():
                    process.kill()
                    process.communicate()
                    raise OperationCancelled(f"{command[0]} {command[1]} cancelled") from None

    return subprocess.CompletedProcess(command, process.returncode, stdout, stderr)


def _output_message(result: subprocess.CompletedProcess[str]) -> str:
    return (result.stderr or "").strip() or (result.stdout or "").strip() or "Unknown git error"


class VersionControl(Protocol):
    """Capabilities the remediation service needs from a local VCS."""

    def clone(
        self,
        repo_url: str,
        destination: Path,
        *,
        timeout: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> Path: ...

    def diff(self, repo_path: Path) -> str: ...

    def checkout_new_branch(self, repo_path: Path, branch: str) -> None: ...

    def configure_identity(self, repo_path: Path, name: str, email: str) -> None: ...

    def stage_all(self, repo_path: Path) -> None: ...

    def commit(self, repo_path: Path, message: str) -> bool: ...

    def push(
        self,
        repo_path: Path,
        repo_url: str,
        branch: str,
        token: str,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> None: ...


class GitCLI:
    """:class:`VersionControl` backed by the ``git`` executable."""

    def __init__(self, executable: str = "git", push_timeout: float = 120.0) -> None:
        self.executable = executable
        self.push_timeout = push_timeout

    def _git(self, repo_path: Path, *args: str, **kwargs) -> subprocess.CompletedProcess[str]:
        return _run_subprocess([self.executable, *args], cwd=repo_path, **kwargs)

    def _checked(self, repo_path: Path, *args: str) -> subprocess.CompletedProcess[str]:
        result = self._git(repo_path, *args)
        if result.returncode != 0:
            raise LocalVCSFailure(
                f"git {args[0]} failed: {_output_message(result)}",
                {"command": _format_command(["git", *args])},
            )
        return result

    def clone(
        self,
        repo_url: str,
        destination: Path,
        *,
        timeout: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> Path:
        """Shallow, blob-filtered, tag-free clone of ``repo_url`` into ``destination``."""

        if repo_url.lstrip().startswith("-"):
            raise LocalVCSFailure("repository URL must not start with '-'")

        command = [
            self.executable,
            "clone",
            "--depth",
            "1",
            "--filter=blob:none",
            "--no-tags",
            repo_url,
            str(destination),
        ]
        LOGGER.info("Cloning repository %s into %s", sanitize_remote(repo_url), destination)
        result = _run_subprocess(command, timeout=timeout, cancel_event=cancel_event)
        if result.returncode != 0:
            raise LocalVCSFailure(f"git clone failed: {_output_message(result)}")

        LOGGER.info("Repository cloned successfully to %s", destination)
        return destination

    def diff(self, repo_path: Path) -> str:
        """Return the working-tree diff, untracked (not ignored) files included.

        The index is left untouched. Raises :class:`NoSafeChange` when the
        working copy is unchanged.
        """

        listing = self._checked(repo_path, "ls-files", "--others", "--exclude-standard", "-z")
        untracked = sorted(path for path in listing.stdout.split("\0") if path)

        chunks = [self._checked(repo_path, "diff", "--no-color", "--no-ext-diff", "--", ".").stdout]
        for path in untracked:
            # --no-index exits 1 when the files differ
            result = self._git(
                repo_path, "diff", "--no-color", "--no-ext-diff", "--no-index", "--", os.devnull, path
            )
            if result.returncode not in (0, 1):
                raise LocalVCSFailure(
                    f"git diff failed: {_output_message(result)}",
                    {"path": path},
                )
            chunks.append(result.stdout)

        diff_text = "".join(chunks)
        if not diff_text.strip():
            raise NoSafeChange("working copy has no changes")
        return diff_text

    def checkout_new_branch(self, repo_path: Path, branch: str) -> None:
        if branch.startswith("-"):
            raise LocalVCSFailure("branch must not start with '-' characters")
        self._checked(repo_path, "checkout", "-b", branch)

    def configure_identity(self, repo_path: Path, name: str, email: str) -> None:
        for key, value in (("user.name", name), ("user.email", email)):
            self._checked(repo_path, "config", key, value)

    def stage_all(self, repo_path: Path) -> None:
        self._checked(repo_path, "add", "-A")

    def commit(self, repo_path: Path, message: str) -> bool:
        """Commit staged changes. Returns ``False`` when there was nothing to commit."""

        result = self._git(repo_path, "commit", "-m", message)
        if result.returncode == 0:
            return True
        output = f"{result.stdout}\n{result.stderr}".lower()
        if any(marker in output for marker in _NOTHING_TO_COMMIT):
            LOGGER.info("Nothing to commit in %s", repo_path)
            return False
        raise LocalVCSFailure(f"git commit failed: {_output_message(result)}")

    def push(
        self,
        repo_path: Path,
        repo_url: str,
        branch: str,
        token: str,
        *,
        cancel_event: Optional[threading.Event] = None,
    ) -> None:
        remote = authenticated_remote(repo_url, token)
        LOGGER.info("Pushing branch %s to %s", branch, sanitize_remote(remote))
        result = self._git(
            repo_path,
            "push",
            remote,
            f"HEAD:{branch}",
            timeout=self.push_timeout,
            cancel_event=cancel_event,
        )
        if result.returncode != 0:
            secrets = [token, quote(token, safe="")]
            raise LocalVCSFailure(f"git push failed: {_scrub(_output_message(result), secrets)}")
        LOGGER.info("Successfully pushed branch %s", branch)


def load_diff(repo_path: Path | str, vcs: Optional[VersionControl] = None) -> str:
    """Return the diff of ``repo_path``, or an empty string when nothing changed."""

    try:
        return (vcs or GitCLI()).diff(Path(repo_path))
    except NoSafeChange:
        return ""


__all__ = [
    "GitCLI",
    "VersionControl",
    "authenticated_remote",
    "load_diff",
    "sanitize_remote",
]
