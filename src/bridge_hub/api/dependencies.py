"""Shared API dependencies for the repeater routes."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from bridge_hub.services.background import BackgroundTaskSupervisor
from bridge_hub.services.rate_limit import RATE_LIMIT_MESSAGE, RateLimitGate
from bridge_hub.services.repeater import RepeaterPipeline
from bridge_hub.services.store import Store


def get_client_ip(request: Request) -> str | None:
    """Return the caller's address, preferring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


def get_repeater(request: Request) -> RepeaterPipeline:
    """Return the pipeline built at application startup."""
    return request.app.state.repeater


def get_supervisor(request: Request) -> BackgroundTaskSupervisor:
    """Return the background task supervisor built at application startup."""
    return request.app.state.supervisor


def get_store(request: Request) -> Store:
    """Return the store the repeater was built with."""
    return request.app.state.store


async def enforce_rate_limit(request: Request) -> None:
    """Reject the call with 429 when the caller exhausted its window.

    Runs before the repeater, so rejected calls never reach the request log.
    """
    gate: RateLimitGate | None = getattr(request.app.state, "rate_limiter", None)
    if gate is None:
        return
    key = get_client_ip(request) or "unknown"
    if not await gate.allow(key):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=RATE_LIMIT_MESSAGE,
        )


RepeaterDep = Annotated[RepeaterPipeline, Depends(get_repeater)]
SupervisorDep = Annotated[BackgroundTaskSupervisor, Depends(get_supervisor)]
StoreDep = Annotated[Store, Depends(get_store)]
