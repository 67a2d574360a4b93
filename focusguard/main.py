"""FastAPI application entry point for the tracking agent."""

import logging
import os
from contextlib import AsyncExitStack, asynccontextmanager
from typing import cast

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.types import ExceptionHandler

from focusguard import __version__
from focusguard.api.routes import limiter, router
from focusguard.config import Settings, load_settings
from focusguard.services.dispatcher import EventDispatcher, EventQueue
from focusguard.services.metadata_service import PageMetadataService
from focusguard.services.reconciler import SessionReconciler
from focusguard.services.registrar import Registrar, RemoteRegistrar
from focusguard.services.session_store import SessionStore
from focusguard.services.tab_registry import TabRegistry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Wire the tracking services and close open visits on shutdown."""
    settings: Settings = app.state.settings

    async with AsyncExitStack() as stack:
        client: httpx.AsyncClient | None = app.state.http_client
        if client is None:
            client = await stack.enter_async_context(
                httpx.AsyncClient(timeout=settings.http_timeout_seconds)
            )

        registrar: Registrar | None = app.state.registrar
        if registrar is None:
            registrar = RemoteRegistrar(client, settings.api_base_url, settings.origin)

        registry = TabRegistry()
        metadata = PageMetadataService(registry, client if settings.fetch_metadata else None)
        reconciler = SessionReconciler(
            registrar,
            metadata,
            store=SessionStore(),
            user_id=settings.user_id,
            default_category_id=settings.default_category_id,
            double_edged_category_ids=settings.double_edged_category_ids,
        )
        dispatcher = EventDispatcher(reconciler, registry)
        queue = EventQueue()
        queue.start()

        app.state.tab_registry = registry
        app.state.reconciler = reconciler
        app.state.dispatcher = dispatcher
        app.state.event_queue = queue

        await queue.submit(dispatcher.initialise)
        logger.info("Tracking agent ready, backend at %s", settings.api_base_url)

        try:
            yield
        finally:
            failed = await queue.submit(dispatcher.close_all)
            if failed:
                logger.warning("Shutting down with open visits in tabs %s", failed)
            await queue.stop()


def create_app(
    settings: Settings | None = None,
    registrar: Registrar | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Create the agent application.

    Args:
        settings: Runtime settings; read from the environment when omitted.
        registrar: Backend client to use instead of the HTTP registrar.
        http_client: Shared HTTP client for the registrar and page fetches.
            The caller owns its lifetime when given.
    """
    app = FastAPI(
        title="FocusGuard Agent",
        description="Tracks website and content visits per browser tab",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings or load_settings()
    app.state.registrar = registrar
    app.state.http_client = http_client

    # Add rate limiter state and exception handler
    app.state.limiter = limiter
    app.add_exception_handler(
        RateLimitExceeded, cast(ExceptionHandler, _rate_limit_exceeded_handler)
    )

    # Browser extensions call the agent from their own origins
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=r"^(chrome|moz)-extension://.*$",
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    @app.get("/health")
    def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()


def main() -> None:
    """Run the development server."""
    import uvicorn

    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8765"))

    uvicorn.run(
        "focusguard.main:app",
        host=host,
        port=port,
        reload=True,
    )


if __name__ == "__main__":
    main()
