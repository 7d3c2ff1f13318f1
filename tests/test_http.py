"""Tests for the HTTP API layer."""
from __future__ import annotations

import asyncio
import hashlib
import threading
from typing import Iterator, List, Optional

import pytest
from fastapi.testclient import TestClient

from argus.errors import (
    AuthFailure,
    LocalVCSFailure,
    OperationCancelled,
    PolicyViolation,
    ProviderAPIFailure,
    RemediationError,
    RepositoryNotFound,
)
from argus.models import RemediationRequest, RemediationResponse
from service.http import app, get_service, requester_identity, watch_disconnect
from service.vcs import _run_subprocess


class FakeService:
    def __init__(self, response: Optional[RemediationResponse] = None, error: Optional[Exception] = None) -> None:
        self.response = response or RemediationResponse(mode="dry-run", diff="diff --git a/.gitignore b/.gitignore\n")
        self.error = error
        self.requests: List[RemediationRequest] = []
        self.cancel_events: List[Optional[threading.Event]] = []

    def create(
        self, request: RemediationRequest, *, cancel_event: Optional[threading.Event] = None
    ) -> RemediationResponse:
        self.requests.append(request)
        self.cancel_events.append(cancel_event)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def client() -> Iterator[TestClient]:
    yield TestClient(app)
    app.dependency_overrides.clear()


def _use(service: FakeService) -> FakeService:
    app.dependency_overrides[get_service] = lambda: service
    return service


def test_healthz(client: TestClient) -> None:
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_dry_run_request_defaults(client: TestClient) -> None:
    service = _use(FakeService())

    response = client.post(
        "/repos/repo-1/pull-requests",
        json={"title": "   ", "max_fixes": 0},
        headers={"Authorization": "Bearer alice"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["mode"] == "dry-run"
    assert body["diff"].startswith("diff --git")
    assert body.get("pr_url") is None
    [request] = service.requests
    assert request.repo_id == "repo-1"
    assert request.title == "Argus: Fix findings"
    assert request.max_fixes == 10
    assert request.confirm is False
    assert request.base_branch is None
    assert request.requested_by == "bearer:sha256:" + hashlib.sha256(b"alice").hexdigest()[:16]
    assert "alice" not in request.requested_by


def test_empty_body_is_accepted(client: TestClient) -> None:
    service = _use(FakeService())

    response = client.post("/repos/repo-1/pull-requests", json={})

    assert response.status_code == 200
    assert service.requests[0].requested_by == ""


def test_confirmed_request_returns_pull_request(client: TestClient) -> None:
    service = _use(
        FakeService(
            RemediationResponse(
                mode="created",
                diff="diff",
                pr_url="https://github.com/acme/app/pull/1",
                branch="argus/fix-1",
            )
        )
    )

    response = client.post(
        "/repos/repo-1/pull-requests",
        json={"confirm": True, "base_branch": "develop", "max_fixes": 3, "title": "Fix secrets"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "mode": "created",
        "diff": "diff",
        "pr_url": "https://github.com/acme/app/pull/1",
        "branch": "argus/fix-1",
    }
    request = service.requests[0]
    assert (request.confirm, request.base_branch, request.max_fixes, request.title) == (
        True,
        "develop",
        3,
        "Fix secrets",
    )


@pytest.mark.parametrize(
    "error, status",
    [
        (PolicyViolation("only github.com .git repos are supported"), 400),
        (RepositoryNotFound("repo not found"), 404),
        (AuthFailure("missing github app credentials"), 502),
        (ProviderAPIFailure("GitHub API POST /repos/a/b/pulls failed status=422", status=422), 502),
        (LocalVCSFailure("git clone failed: fatal"), 500),
        (OperationCancelled("request cancelled before clone"), 499),
        (RemediationError("working copy update failed: Is a directory"), 500),
    ],
)
def test_errors_use_envelope(client: TestClient, error: RemediationError, status: int) -> None:
    _use(FakeService(error=error))

    response = client.post("/repos/repo-1/pull-requests", json={"confirm": True})

    assert response.status_code == status
    payload = response.json()
    assert payload["status"] == "error"
    assert payload["error"]["type"] == type(error).__name__
    assert payload["error"]["message"] == error.message
    assert payload["error"]["code"] == status


def test_invalid_body_is_rejected(client: TestClient) -> None:
    _use(FakeService())

    response = client.post("/repos/repo-1/pull-requests", json={"max_fixes": "many"})

    assert response.status_code == 422


def test_request_runs_with_unset_cancel_event(client: TestClient) -> None:
    service = _use(FakeService())

    client.post("/repos/repo-1/pull-requests", json={})

    [cancel_event] = service.cancel_events
    assert isinstance(cancel_event, threading.Event)
    assert not cancel_event.is_set()


class SlowGitService:
    """Runs a long subprocess through the git runner so cancellation has something to kill."""

    def create(
        self, request: RemediationRequest, *, cancel_event: Optional[threading.Event] = None
    ) -> RemediationResponse:
        _run_subprocess(["sleep", "5"], timeout=30, cancel_event=cancel_event)
        return RemediationResponse(mode="dry-run", diff="unreachable")


def test_client_disconnect_cancels_pipeline(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    async def disconnected(self) -> bool:  # type: ignore[no-untyped-def]
        return True

    monkeypatch.setattr("starlette.requests.Request.is_disconnected", disconnected)
    _use(SlowGitService())  # type: ignore[arg-type]

    response = client.post("/repos/repo-1/pull-requests", json={"confirm": True})

    assert response.status_code == 499
    assert response.json()["error"]["type"] == "OperationCancelled"


class StubRequest:
    def __init__(self, polls_before_disconnect: int) -> None:
        self.remaining = polls_before_disconnect
        self.url = type("URL", (), {"path": "/repos/repo-1/pull-requests"})()

    async def is_disconnected(self) -> bool:
        self.remaining -= 1
        return self.remaining < 0


def test_watch_disconnect_sets_event(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("service.http.DISCONNECT_POLL_SECONDS", 0.01)
    cancel_event = threading.Event()

    asyncio.run(watch_disconnect(StubRequest(polls_before_disconnect=3), cancel_event))  # type: ignore[arg-type]

    assert cancel_event.is_set()


@pytest.mark.parametrize(
    "header, scheme",
    [
        ("Bearer ghp_secretvalue", "bearer"),
        ("token ghp_secretvalue", "token"),
        ("ghp_secretvalue", "token"),
    ],
)
def test_requester_identity_never_stores_the_credential(header: str, scheme: str) -> None:
    identity = requester_identity(header)

    assert identity == f"{scheme}:sha256:" + hashlib.sha256(b"ghp_secretvalue").hexdigest()[:16]
    assert "ghp_secretvalue" not in identity


def test_requester_identity_blank() -> None:
    assert requester_identity(None) == ""
    assert requester_identity("   ") == ""
