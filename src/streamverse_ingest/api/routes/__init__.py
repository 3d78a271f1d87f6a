"""Route modules public API."""

from streamverse_ingest.api.routes.health import router as health_router
from streamverse_ingest.api.routes.objects import router as objects_router
from streamverse_ingest.api.routes.transfers import router as transfers_router
from streamverse_ingest.api.routes.uploads import router as uploads_router

__all__ = ["health_router", "objects_router", "transfers_router", "uploads_router"]
