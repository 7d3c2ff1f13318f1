"""HTTP interface for the remediation pipeline."""
from __future__ import annotations

import asyncio
import hashlib
import threading
from functools import lru_cache
from http import HTTPStatus
from typing import Dict, Optional, Type

from fastapi import Depends, FastAPI, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from argus.errors import (
    AuthFailure,
    LocalVCSFailure,
    OperationCancelled,
    PolicyViolation,
    ProviderAPIFailure,
    RemediationError,
    RepositoryNotFound,
)
from argus.models import RemediationRequest
from argus.store import InMemoryStore
from common.logging import get_logger

from .operations import RemediationService
from .schemas import CreatePullRequestBody, ErrorDetail, ErrorResponse, RemediationResponseModel

LOGGER = get_logger("argus.service.http")

CLIENT_CLOSED_REQUEST = 499
DISCONNECT_POLL_SECONDS = 0.5

_STATUS_BY_ERROR: Dict[Type[RemediationError], int] = {
    PolicyViolation: HTTPStatus.BAD_REQUEST.value,
    RepositoryNotFound: HTTPStatus.NOT_FOUND.value,
    AuthFailure: HTTPStatus.BAD_GATEWAY.value,
    ProviderAPIFailure: HTTPStatus.BAD_GATEWAY.value,
    LocalVCSFailure: HTTPStatus.INTERNAL_SERVER_ERROR.value,
    OperationCancelled: CLIENT_CLOSED_REQUEST,
}


def status_for_error(exc: RemediationError) -> int:
    for error_type, status in _STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            return status
    return HTTPStatus.INTERNAL_SERVER_ERROR.value


def requester_identity(authorization: Optional[str]) -> str:
    """Return a stable fingerprint of the caller's credential, never the credential itself."""

    if not authorization or not authorization.strip():
        return ""
    scheme, _, credential = authorization.strip().partition(" ")
    if not credential.strip():
        scheme, credential = "token", scheme
    digest = hashlib.sha256(credential.strip().encode("utf-8")).hexdigest()[:16]
    return f"{scheme.lower()}:sha256:{digest}"


async def watch_disconnect(request: Request, cancel_event: threading.Event) -> None:
    """Set ``cancel_event`` once the client has gone away."""

    while not cancel_event.is_set():
        if await request.is_disconnected():
            LOGGER.warning("Client disconnected from %s; cancelling remediation", request.url.path)
            cancel_event.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


@lru_cache
def get_service() -> RemediationService:
    """Default service wiring; deployments override this dependency with a real store."""

    return RemediationService(InMemoryStore())


app = FastAPI(title="Argus remediation")


@app.exception_handler(RemediationError)
async def _remediation_error_handler(request: Request, exc: RemediationError) -> JSONResponse:
    status = status_for_error(exc)
    LOGGER.warning("%s %s -> %s %s", request.method, request.url.path, status, exc.__class__.__name__)
    payload = ErrorResponse(
        error=ErrorDetail(
            type=exc.__class__.__name__,
            message=exc.message,
            code=status,
            details=exc.details,
        )
    )
    return JSONResponse(status_code=status, content=payload.model_dump())


@app.get("/healthz")
async def healthz() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/repos/{repo_id}/pull-requests", response_model=RemediationResponseModel)
async def create_pull_request(
    repo_id: str,
    payload: CreatePullRequestBody,
    request: Request,
    authorization: Optional[str] = Header(default=None),
    service: RemediationService = Depends(get_service),
) -> RemediationResponseModel:
    """Compute a dry-run diff, or open a pull request when ``confirm`` is set.

    The pipeline runs in a worker thread. A client disconnect, or cancellation
    of this coroutine, sets the cancel event so an in-flight clone, push or
    provider call is aborted.
    """

    remediation_request = RemediationRequest(
        repo_id=repo_id,
        title=payload.title,
        base_branch=payload.base_branch,
        confirm=payload.confirm,
        max_fixes=payload.max_fixes,
        requested_by=requester_identity(authorization),
    )
    cancel_event = threading.Event()
    watcher = asyncio.ensure_future(watch_disconnect(request, cancel_event))
    try:
        result = await run_in_threadpool(service.create, remediation_request, cancel_event=cancel_event)
    except asyncio.CancelledError:
        cancel_event.set()
        raise
    finally:
        watcher.cancel()
    return RemediationResponseModel(**result.to_dict())


__all__ = ["app", "get_service", "status_for_error"]
