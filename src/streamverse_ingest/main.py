"""FastAPI application entrypoint."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from streamverse_ingest import __version__
from streamverse_ingest.api import api_router
from streamverse_ingest.api.dependencies import get_service_graph, get_settings


def create_app() -> FastAPI:
    """Build FastAPI application."""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        """Build singleton dependencies and run background workers."""

        transfers = get_service_graph().transfers
        await transfers.startup()
        try:
            yield
        finally:
            await transfers.shutdown()

    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()


def run() -> None:
    """Run the HTTP server."""

    settings = get_settings()
    uvicorn.run(
        "streamverse_ingest.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
    )


__all__ = ["app", "create_app", "run"]
