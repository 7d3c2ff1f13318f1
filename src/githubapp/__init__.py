"""GitHub App integration: assertion signing, token exchange and REST calls."""

from .auth import build_app_assertion, exchange_installation_token, load_rsa_private_key
from .client import GitHubAppClient, PullRequest, parse_github_url, validate_app_ids

__all__ = [
    "GitHubAppClient",
    "PullRequest",
    "build_app_assertion",
    "exchange_installation_token",
    "load_rsa_private_key",
    "parse_github_url",
    "validate_app_ids",
]
