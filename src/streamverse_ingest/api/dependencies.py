"""Dependency providers for FastAPI routes."""

from functools import lru_cache

from streamverse_ingest.application.services import TransferService, UploadSessionService
from streamverse_ingest.bootstrap import ServiceGraph, build_services
from streamverse_ingest.config import Settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return singleton settings."""

    return Settings()


@lru_cache(maxsize=1)
def get_service_graph() -> ServiceGraph:
    """Return singleton service graph."""

    return build_services(get_settings())


def get_transfer_service() -> TransferService:
    return get_service_graph().transfers


def get_upload_service() -> UploadSessionService:
    return get_service_graph().uploads


__all__ = [
    "get_service_graph",
    "get_settings",
    "get_transfer_service",
    "get_upload_service",
]
