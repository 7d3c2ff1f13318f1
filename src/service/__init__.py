"""Remediation service layer: git plumbing, orchestration and the HTTP API."""
