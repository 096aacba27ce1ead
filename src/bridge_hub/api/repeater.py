# src/bridge_hub/api/repeater.py
"""Public repeater route: `/r/{alias}` and `/r/{alias}/{subpath}`."""

from __future__ import annotations

import asyncio
import time
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from bridge_hub.api.dependencies import (
    RepeaterDep,
    SupervisorDep,
    enforce_rate_limit,
    get_client_ip,
)
from bridge_hub.core.settings import settings
from bridge_hub.services.forwarder import loads_strict
from bridge_hub.services.repeater import InboundRequest

REPEATER_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"]

INVALID_JSON_MESSAGE = "Request body is not valid JSON"
NON_OBJECT_MESSAGE = "Request body must be a JSON object"

# Statuses that must not carry a response body.
BODYLESS_STATUSES = frozenset({204, 304})

router = APIRouter(prefix="/r", tags=["repeater"])


class _BodyTooLarge(Exception):
    pass


async def _read_body(request: Request, limit: int) -> bytes:
    """Read the request body, stopping once it exceeds `limit` bytes."""
    chunks: list[bytes] = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if limit > 0 and size > limit:
            raise _BodyTooLarge
        chunks.append(chunk)
    return b"".join(chunks)


def decode_payload(raw: bytes) -> tuple[Any, str | None]:
    """Decode a JSON object body.

    Returns `(payload, error)`. An empty body is an empty object. When the
    body is unreadable the raw text is returned as the payload so it can
    still be logged.
    """
    if not raw.strip():
        return {}, None
    text = raw.decode("utf-8", errors="replace")
    try:
        payload = loads_strict(text)
    except ValueError:
        return text, INVALID_JSON_MESSAGE
    if not isinstance(payload, dict):
        return payload, NON_OBJECT_MESSAGE
    return payload, None


def relay_response(status_code: int, content: Any, method: str) -> Response:
    """Build the client response; bodyless statuses and HEAD get no content."""
    if method.upper() == "HEAD" or status_code < 200 or status_code in BODYLESS_STATUSES:
        return Response(status_code=status_code)
    return JSONResponse(status_code=status_code, content=content)


async def _repeat(
    request: Request,
    alias: str,
    subpath: str | None,
    repeater: RepeaterDep,
    supervisor: SupervisorDep,
) -> Response:
    started_at = time.perf_counter()

    payload: Any = None
    body_error: str | None = None
    too_large = False
    try:
        raw = await _read_body(request, settings.max_request_bytes)
    except _BodyTooLarge:
        too_large = True
    else:
        payload, body_error = decode_payload(raw)

    inbound = InboundRequest(
        alias=alias,
        method=request.method,
        headers=dict(request.headers),
        payload=payload,
        body_error=body_error,
        body_too_large=too_large,
        client_ip=get_client_ip(request),
        subpath=subpath or None,
        started_at=started_at,
    )

    # A client disconnect cancels this handler; the shielded task still
    # finishes the forward and schedules its log entry.
    task = supervisor.spawn(repeater.handle(inbound), name=f"repeat-{alias}")
    result = await asyncio.shield(task)
    return relay_response(result.status_code, result.content, request.method)


@router.api_route(
    "/{alias}",
    methods=REPEATER_METHODS,
    dependencies=[Depends(enforce_rate_limit)],
)
async def repeat(
    request: Request,
    alias: str,
    repeater: RepeaterDep,
    supervisor: SupervisorDep,
) -> Response:
    """Forward the call to the endpoint registered under `alias`."""
    return await _repeat(request, alias, None, repeater, supervisor)


@router.api_route(
    "/{alias}/{subpath:path}",
    methods=REPEATER_METHODS,
    dependencies=[Depends(enforce_rate_limit)],
)
async def repeat_subpath(
    request: Request,
    alias: str,
    subpath: str,
    repeater: RepeaterDep,
    supervisor: SupervisorDep,
) -> Response:
    """Same as `repeat`; the trailing path is passed to the target as `_path`."""
    return await _repeat(request, alias, subpath, repeater, supervisor)
