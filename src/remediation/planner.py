"""Classify findings into allowlisted automatic fixes and manual items."""

from __future__ import annotations

from typing import Iterable, List

from argus.models import DEFAULT_MAX_FIXES, Finding, FixAction, FixActionKind, ManualItem, Plan

SECRET_SCANNER_TOOLS = frozenset({"gitleaks"})

GITIGNORE_PATH = ".gitignore"
GITIGNORE_DESCRIPTION = "Ensure .env is ignored"
REDACTION_DESCRIPTION = "Replace hardcoded credential-like value with environment placeholder"

REASON_AMBIGUOUS = "manual fix required: ambiguous or potentially unsafe automatic change"
REASON_CAP_REACHED = "manual fix required: automatic fix cap reached"


def _is_secret_finding(finding: Finding) -> bool:
    tool = finding.tool.strip().lower()
    title = finding.title.strip().lower()
    return tool in SECRET_SCANNER_TOOLS or "secret" in title


def _normalize_path(path: str) -> str:
    return path.strip().replace("\\", "/")


def _gitignore_action() -> FixAction:
    return FixAction(
        kind=FixActionKind.GITIGNORE_ENV,
        file_path=GITIGNORE_PATH,
        line_start=0,
        description=GITIGNORE_DESCRIPTION,
    )


def build_plan(findings: Iterable[Finding], max_fixes: int = DEFAULT_MAX_FIXES) -> Plan:
    """Return the remediation plan for ``findings``.

    Findings are walked in the order given. Secret findings that name a file
    become redaction actions; the first other finding is folded into the
    ``.env`` ignore action, and every later one is recorded as manual. Once
    ``max_fixes`` actions exist, findings that would have produced an action
    are recorded as manual too, so nothing is dropped silently. A plan always
    ends with the ``.env`` ignore action when there is room for it.

    The result depends only on the arguments.
    """

    if max_fixes <= 0:
        max_fixes = DEFAULT_MAX_FIXES

    actions: List[FixAction] = []
    manual: List[ManualItem] = []
    seen_gitignore = False

    for finding in findings:
        file_path = _normalize_path(finding.file_path)
        at_cap = len(actions) >= max_fixes

        if _is_secret_finding(finding) and file_path:
            if at_cap:
                manual.append(ManualItem(REASON_CAP_REACHED, finding.title, finding.file_path))
                continue
            actions.append(
                FixAction(
                    kind=FixActionKind.SECRET_REDACTION,
                    file_path=file_path,
                    line_start=finding.line_start,
                    description=REDACTION_DESCRIPTION,
                )
            )
            continue

        if not seen_gitignore:
            if at_cap:
                manual.append(ManualItem(REASON_CAP_REACHED, finding.title, finding.file_path))
                continue
            actions.append(_gitignore_action())
            seen_gitignore = True
            continue

        manual.append(ManualItem(REASON_AMBIGUOUS, finding.title, finding.file_path))

    if not seen_gitignore and len(actions) < max_fixes:
        actions.append(_gitignore_action())

    return Plan(actions=actions, manual=manual)


__all__ = [
    "REASON_AMBIGUOUS",
    "REASON_CAP_REACHED",
    "SECRET_SCANNER_TOOLS",
    "build_plan",
]
