"""Job store implementations."""

from streamverse_ingest.infrastructure.repositories.in_memory_job_store import InMemoryJobStore

__all__ = ["InMemoryJobStore"]
