"""Remediation package exports."""

from __future__ import annotations

from .applier import SECRET_PLACEHOLDER, apply_plan, redact_line
from .planner import build_plan

__all__ = ["SECRET_PLACEHOLDER", "apply_plan", "build_plan", "redact_line"]
