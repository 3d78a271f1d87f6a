"""Top-level API router composition."""

from fastapi import APIRouter

from streamverse_ingest.api.routes import (
    health_router,
    objects_router,
    transfers_router,
    uploads_router,
)

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(transfers_router)
api_router.include_router(uploads_router)
api_router.include_router(objects_router)

__all__ = ["api_router"]
