"""GitHub App authentication: signed app assertion and installation token."""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from argus.errors import AuthFailure, ProviderAPIFailure

from .transport import DEFAULT_API_VERSION, request_json

LOGGER = logging.getLogger("argus.githubapp.auth")

CLOCK_SKEW_SECONDS = 30
ASSERTION_LIFETIME_SECONDS = 570


def load_rsa_private_key(pem: str) -> rsa.RSAPrivateKey:
    """Load an RSA key from PKCS#1 (``RSA PRIVATE KEY``) or PKCS#8 (``PRIVATE KEY``) PEM."""

    if not pem or not pem.strip():
        raise AuthFailure("private key pem is empty")
    try:
        key = serialization.load_pem_private_key(pem.strip().encode("utf-8"), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise AuthFailure("invalid private key pem") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise AuthFailure("private key is not RSA")
    return key


def build_app_assertion(app_id: str, private_key_pem: str, *, now: Optional[int] = None) -> str:
    """Return a short-lived RS256 assertion (``header.payload.signature``) for ``app_id``."""

    key = load_rsa_private_key(private_key_pem)
    issued_at = int(time.time() if now is None else now) - CLOCK_SKEW_SECONDS
    claims = {
        "iat": issued_at,
        "exp": issued_at + ASSERTION_LIFETIME_SECONDS,
        "iss": str(app_id),
    }
    try:
        return jwt.encode(claims, key, algorithm="RS256")
    except jwt.PyJWTError as exc:
        raise AuthFailure("could not sign app assertion") from exc


def exchange_installation_token(
    assertion: str,
    installation_id: str,
    *,
    api_base_url: str = "https://api.github.com",
    api_version: str = DEFAULT_API_VERSION,
    timeout: float = 25.0,
    cancel_event: Optional[threading.Event] = None,
) -> str:
    """Trade a signed app assertion for an installation access token."""

    url = f"{api_base_url.rstrip('/')}/app/installations/{installation_id}/access_tokens"
    try:
        data = request_json(
            "POST",
            url,
            bearer=assertion,
            payload={},
            timeout=timeout,
            api_version=api_version,
            cancel_event=cancel_event,
        )
    except ProviderAPIFailure as exc:
        status = exc.status if exc.status is not None else "unavailable"
        raise AuthFailure(f"token exchange failed: status={status}", exc.details) from exc

    token = data.get("token") if isinstance(data, dict) else None
    if not token:
        raise AuthFailure("empty installation token")
    LOGGER.info("Obtained installation token for installation %s", installation_id)
    return str(token)


__all__ = [
    "ASSERTION_LIFETIME_SECONDS",
    "CLOCK_SKEW_SECONDS",
    "build_app_assertion",
    "exchange_installation_token",
    "load_rsa_private_key",
]
