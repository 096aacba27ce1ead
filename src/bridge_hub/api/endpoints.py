# src/bridge_hub/api/endpoints.py
"""Read-only endpoint configuration route (debugging aid, off by default)."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, status

from bridge_hub.api.dependencies import StoreDep
from bridge_hub.core.settings import settings
from bridge_hub.schemas import EndpointInfo, EndpointInfoResponse

router = APIRouter(prefix="/api/endpoints", tags=["endpoints"])


@router.get("/{alias}/info", response_model=EndpointInfoResponse)
async def get_endpoint_info(alias: str, request: Request, store: StoreDep) -> EndpointInfoResponse:
    """Return the stored configuration of an endpoint, active or not.

    Answers 404 when the route is disabled so its existence is not revealed.
    """
    if not settings.endpoint_info_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")

    endpoint = await store.get_endpoint_by_alias(alias)
    if endpoint is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Endpoint '{alias}' not found",
        )

    public_url = str(request.base_url).rstrip("/") + f"/r/{endpoint.alias}"
    return EndpointInfoResponse(
        endpoint=EndpointInfo(**endpoint.public_view(), url=public_url),
    )
