"""In-memory job store."""

from __future__ import annotations

import asyncio

from streamverse_ingest.domain.jobs import TransferJob
from streamverse_ingest.domain.ports import JobStore


class InMemoryJobStore(JobStore):
    """Process-local job snapshots for single-instance deployments and tests."""

    def __init__(self) -> None:
        self._jobs: dict[str, TransferJob] = {}
        self._lock = asyncio.Lock()

    async def get(self, job_id: str) -> TransferJob | None:
        return self._jobs.get(job_id)

    async def put(self, job: TransferJob) -> None:
        async with self._lock:
            self._jobs[job.id] = job

    async def delete(self, job_id: str) -> None:
        async with self._lock:
            self._jobs.pop(job_id, None)

    async def list(self) -> list[TransferJob]:
        """Return all jobs in insertion order."""

        async with self._lock:
            return list(self._jobs.values())


__all__ = ["InMemoryJobStore"]
