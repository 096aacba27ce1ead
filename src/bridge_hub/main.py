# src/bridge_hub/main.py
"""Main entry point for the Bridge Hub application."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from bridge_hub.api import endpoints_router, repeater_router
from bridge_hub.core.errors import install_error_handling
from bridge_hub.core.settings import settings
from bridge_hub.services.background import BackgroundTaskSupervisor
from bridge_hub.services.endpoint_directory import AliasCache, EndpointDirectory
from bridge_hub.services.forwarder import Forwarder
from bridge_hub.services.key_authorizer import KeyAuthorizer
from bridge_hub.services.rate_limit import RateLimitGate, build_rate_limiter
from bridge_hub.services.repeater import RepeaterPipeline
from bridge_hub.services.request_log import RequestLogWriter
from bridge_hub.services.store import SqlStore, Store

logger = logging.getLogger(__name__)

DESCRIPTION = "Forwards calls on stable public aliases to user-configured targets"


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def _default_store() -> Store:
    from bridge_hub.db.session import create_tables

    if settings.auto_create_tables:
        await asyncio.to_thread(create_tables)
    return SqlStore()


def create_app(
    *,
    store: Store | None = None,
    forward_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the FastAPI app.

    Args:
        store: Persistence backend; defaults to the SQLAlchemy store
        forward_transport: Optional httpx transport used for outbound calls
    """
    app = FastAPI(
        title=settings.app_name,
        description=DESCRIPTION,
        version=settings.app_version,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )
    app.add_middleware(GZipMiddleware)
    install_error_handling(app)

    app.include_router(repeater_router)
    app.include_router(endpoints_router)

    @app.on_event("startup")
    async def on_startup() -> None:
        configure_logging()
        supervisor = BackgroundTaskSupervisor()
        backend = store if store is not None else await _default_store()

        directory = EndpointDirectory(
            backend,
            AliasCache(
                ttl_seconds=settings.alias_cache_ttl_seconds,
                max_entries=settings.alias_cache_max_entries,
            ),
        )
        forwarder = Forwarder(transport=forward_transport)
        app.state.supervisor = supervisor
        app.state.store = backend
        app.state.forwarder = forwarder
        app.state.repeater = RepeaterPipeline(
            directory,
            KeyAuthorizer(backend, supervisor),
            forwarder,
            RequestLogWriter(backend),
            supervisor,
            expose_errors=settings.debug,
        )
        app.state.rate_limiter = build_rate_limiter()
        logger.info("%s %s started", settings.app_name, settings.app_version)

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        supervisor: BackgroundTaskSupervisor | None = getattr(app.state, "supervisor", None)
        if supervisor is not None:
            drained = await supervisor.drain(settings.background_drain_timeout_seconds)
            if not drained:
                logger.warning("Shutting down with %d unfinished background task(s)", supervisor.pending)
        forwarder: Forwarder | None = getattr(app.state, "forwarder", None)
        if forwarder is not None:
            await forwarder.close()
        gate: RateLimitGate | None = getattr(app.state, "rate_limiter", None)
        if gate is not None:
            await gate.close()

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint to verify the service is running."""
        return {
            "status": "ok",
            "timestamp": datetime.now(UTC).isoformat(),
            "service": settings.app_name,
        }

    @app.get("/")
    async def root() -> dict[str, object]:
        """Root endpoint with basic information about the API."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "description": DESCRIPTION,
            "routes": {
                "repeater": "/r/{alias}",
                "endpoint_info": "/api/endpoints/{alias}/info",
                "health": "/health",
            },
            "docs": "/docs",
        }

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("bridge_hub.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
