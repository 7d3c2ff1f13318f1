"""JSON-over-HTTPS helper for GitHub REST calls."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Mapping, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from argus.errors import OperationCancelled, ProviderAPIFailure

LOGGER = logging.getLogger("argus.githubapp.transport")

DEFAULT_API_VERSION = "2022-11-28"
_ERROR_BODY_LIMIT = 800


def request_json(
    method: str,
    url: str,
    *,
    bearer: str,
    payload: Optional[Mapping[str, Any]] = None,
    timeout: float = 25.0,
    api_version: str = DEFAULT_API_VERSION,
    cancel_event: Optional[threading.Event] = None,
) -> Any:
    """Send one bearer-authenticated request and decode the JSON reply.

    Non-2xx answers, network errors and undecodable bodies raise
    :class:`ProviderAPIFailure`. Nothing is retried.
    """

    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelled(f"request cancelled before {method} {urlparse(url).path}")

    path = urlparse(url).path
    data = json.dumps(payload).encode("utf-8") if payload is not None else None
    request = Request(url, data=data, method=method)
    request.add_header("Authorization", f"Bearer {bearer}")
    request.add_header("Accept", "application/vnd.github+json")
    request.add_header("X-GitHub-Api-Version", api_version)
    if data is not None:
        request.add_header("Content-Type", "application/json")

    LOGGER.debug("GitHub API %s %s", method, path)
    try:
        with urlopen(request, timeout=timeout) as response:
            raw = response.read().decode("utf-8")
    except HTTPError as exc:
        try:
            error_body = exc.read().decode("utf-8", errors="ignore")[:_ERROR_BODY_LIMIT]
        except OSError:
            error_body = ""
        LOGGER.error("GitHub API %s %s returned %s", method, path, exc.code)
        raise ProviderAPIFailure(
            f"GitHub API {method} {path} failed status={exc.code}",
            status=exc.code,
            details={"body": error_body},
        ) from exc
    except (URLError, TimeoutError) as exc:
        reason = getattr(exc, "reason", exc)
        LOGGER.error("GitHub API %s %s unreachable: %s", method, path, reason)
        raise ProviderAPIFailure(f"GitHub API {method} {path} unreachable: {reason}") from exc

    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ProviderAPIFailure(f"GitHub API {method} {path} returned invalid JSON") from exc


__all__ = ["DEFAULT_API_VERSION", "request_json"]
