"""Apply a remediation plan to a working copy."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional, Tuple

from argus.models import ApplyResult, FixAction, FixActionKind, ManualItem, Plan

LOGGER = logging.getLogger("argus.remediation.applier")

SECRET_PLACEHOLDER = '"${SECRET_FROM_ENV}"'

REASON_INVALID_PATH = "manual fix required: invalid target path"
REASON_NO_MATCH = "manual fix required: no safe redaction match found"
REASON_UNSUPPORTED = "manual fix required: unsupported action"

_SECRET_ASSIGNMENT = re.compile(
    r"^(?P<prefix>[ \t]*[A-Z0-9_\-.]*?(?:token|secret|password|api[-_]?key)[A-Z0-9_\-.]*"
    r"(?:[ \t]*[:=][ \t]*|[ \t]+))"
    r"(?P<value>\"[^\"]*\"|'[^']*'|[A-Z0-9_\-]{12,})"
    r"(?P<rest>.*)$",
    re.IGNORECASE,
)


def redact_line(line: str) -> Optional[str]:
    """Return ``line`` with its credential value replaced, or ``None`` if it has none."""

    match = _SECRET_ASSIGNMENT.match(line)
    if not match or match.group("value") == SECRET_PLACEHOLDER:
        return None
    return f"{match.group('prefix')}{SECRET_PLACEHOLDER}{match.group('rest')}"


def _split_lines(text: str) -> List[str]:
    return text.replace("\r\n", "\n").split("\n")


def _write_text(path: Path, text: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as handle:
        handle.write(text)


def resolve_within_root(root: Path, relative: str) -> Optional[Path]:
    """Resolve ``relative`` under ``root``; ``None`` when it would escape it."""

    resolved_root = root.resolve()
    candidate = (resolved_root / relative).resolve()
    if candidate == resolved_root:
        return None
    try:
        candidate.relative_to(resolved_root)
    except ValueError:
        return None
    return candidate


def ensure_env_ignored(gitignore: Path) -> bool:
    """Append ``.env`` to ``gitignore`` unless it is already listed.

    Returns ``True`` when the file was changed.
    """

    try:
        text = gitignore.read_text(encoding="utf-8")
    except FileNotFoundError:
        text = ""

    for line in _split_lines(text):
        if line.strip() == ".env":
            return False

    if text and not text.endswith("\n"):
        text += "\n"
    text += ".env\n"
    _write_text(gitignore, text)
    return True


def redact_secret(path: Path, line_start: int) -> bool:
    """Redact the first credential assignment in ``path``.

    The declared line is tried first, then every line in file order. Returns
    ``False`` when the file is missing, undecodable or has no match.
    """

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return False
    except UnicodeDecodeError:
        LOGGER.info("Skipping redaction of non-text file %s", path)
        return False

    lines = _split_lines(text)
    candidates: List[int] = []
    if 0 < line_start <= len(lines):
        candidates.append(line_start - 1)
    candidates.extend(range(len(lines)))

    for index in candidates:
        replacement = redact_line(lines[index])
        if replacement is None:
            continue
        lines[index] = replacement
        _write_text(path, "\n".join(lines))
        LOGGER.info("Redacted credential value in %s at line %s", path, index + 1)
        return True
    return False


def _apply_secret_redaction(root: Path, action: FixAction) -> Tuple[bool, Optional[str]]:
    target = resolve_within_root(root, action.file_path)
    if target is None:
        LOGGER.warning("Rejected redaction target outside working copy: %s", action.file_path)
        return False, REASON_INVALID_PATH
    if redact_secret(target, action.line_start):
        return True, None
    return False, REASON_NO_MATCH


def apply_plan(repo_dir: Path | str, plan: Plan) -> ApplyResult:
    """Mutate ``repo_dir`` according to ``plan``.

    An action that cannot be applied safely is handed back as a manual item.
    Disk errors are not: any ``OSError`` propagates and aborts the batch.
    """

    root = Path(repo_dir)
    result = ApplyResult(applied=[], manual=list(plan.manual))

    for action in plan.actions:
        if action.kind == FixActionKind.GITIGNORE_ENV:
            gitignore = resolve_within_root(root, ".gitignore")
            if gitignore is None:
                LOGGER.warning("Rejected .gitignore that resolves outside working copy %s", root)
                result.manual.append(ManualItem(REASON_INVALID_PATH, action.description, action.file_path))
            elif ensure_env_ignored(gitignore):
                result.applied.append(action)
            else:
                LOGGER.info(".env already ignored in %s", root)
            continue

        if action.kind == FixActionKind.SECRET_REDACTION:
            applied, reason = _apply_secret_redaction(root, action)
            if applied:
                result.applied.append(action)
            else:
                result.manual.append(ManualItem(reason or REASON_NO_MATCH, action.description, action.file_path))
            continue

        result.manual.append(ManualItem(REASON_UNSUPPORTED, action.description, action.file_path))

    LOGGER.info(
        "Applied %s of %s action(s); %s manual item(s)",
        len(result.applied),
        len(plan.actions),
        len(result.manual),
    )
    return result


__all__ = [
    "REASON_INVALID_PATH",
    "REASON_NO_MATCH",
    "REASON_UNSUPPORTED",
    "SECRET_PLACEHOLDER",
    "apply_plan",
    "ensure_env_ignored",
    "redact_line",
    "redact_secret",
    "resolve_within_root",
]
