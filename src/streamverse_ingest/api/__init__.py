"""HTTP API."""

from streamverse_ingest.api.router import api_router

__all__ = ["api_router"]
