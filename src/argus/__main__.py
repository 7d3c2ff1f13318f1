"""Command line interface for Argus remediation."""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, List

from common.logging import configure_logging
from remediation.planner import build_plan
from service.operations import generate_dry_run_diff

from .errors import RemediationError
from .models import DEFAULT_MAX_FIXES, Finding


def _load_findings(path: str) -> List[Finding]:
    """Read findings from a JSON file holding a list or ``{"findings": [...]}``."""

    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise ValueError(f"Cannot read findings file '{path}': {exc.strerror or exc}") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"Findings file '{path}' is not valid JSON: {exc.msg}") from exc

    if isinstance(raw, dict):
        raw = raw.get("findings")
    if not isinstance(raw, list) or not all(isinstance(item, dict) for item in raw):
        raise ValueError("Findings must be a JSON list of objects")
    return Finding.from_iterable(raw)


def _print(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2), file=sys.stdout)


def _error(error_type: str, message: str) -> Dict[str, Any]:
    return {"status": "error", "error": {"type": error_type, "message": message}}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Argus remediation command line interface")
    parser.add_argument("--verbose", action="store_true", help="Log progress to stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    plan_parser = subparsers.add_parser("plan", help="Show which findings would be fixed automatically")
    plan_parser.add_argument("--findings", required=True, help="Path to a JSON findings file")
    plan_parser.add_argument("--max-fixes", type=int, default=DEFAULT_MAX_FIXES)

    dry_run_parser = subparsers.add_parser(
        "dry-run", help="Apply safe fixes to a local checkout and print the resulting diff"
    )
    dry_run_parser.add_argument("--repo", required=True, help="Path to a git working copy")
    dry_run_parser.add_argument("--findings", required=True, help="Path to a JSON findings file")
    dry_run_parser.add_argument("--max-fixes", type=int, default=DEFAULT_MAX_FIXES)

    return parser


def main(argv: Iterable[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    if args.verbose:
        configure_logging()

    max_fixes = args.max_fixes if args.max_fixes > 0 else DEFAULT_MAX_FIXES
    try:
        findings = _load_findings(args.findings)
    except ValueError as exc:
        _print(_error("InvalidFindings", str(exc)))
        return 2

    if args.command == "plan":
        _print(build_plan(findings, max_fixes).to_dict())
        return 0

    if args.command == "dry-run":
        repo = Path(args.repo)
        if not repo.is_dir():
            _print(_error("InvalidRepository", f"Repository path '{repo}' is not a directory"))
            return 2
        try:
            diff_text, _plan, applied = generate_dry_run_diff(repo, findings, max_fixes)
        except RemediationError as exc:
            _print({"status": "error", "error": exc.to_dict()})
            return 1
        except OSError as exc:
            _print(_error("WorkingCopyError", f"working copy update failed: {exc.strerror or exc}"))
            return 1
        _print({"diff": diff_text, **applied.to_dict()})
        return 0

    parser.error("Unknown command")
    return 2


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    sys.exit(main())
