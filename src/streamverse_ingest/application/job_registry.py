"""Job registry: the only state shared between running transfers and pollers."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

from streamverse_ingest.domain.errors import TransferConflictError, TransferJobNotFoundError
from streamverse_ingest.domain.jobs import (
    StrategyAttempt,
    TransferJob,
    TransferJobStatus,
    compute_progress_percent,
    is_forward_transition,
)
from streamverse_ingest.domain.ports import JobEventPublisher, JobStore

_DEFAULT_RETENTION_SECONDS = 300.0

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def new_job_id() -> str:
    """Return a fresh, never reused job id."""

    return f"job-{uuid4().hex}"


class JobRegistry:
    """Read/update facade over a job store.

    Each job has exactly one writer (the task running it); any number of
    readers may poll. Writes replace the stored snapshot, never mutate it.
    """

    def __init__(
        self,
        store: JobStore,
        *,
        retention_seconds: float = _DEFAULT_RETENTION_SECONDS,
        event_publisher: JobEventPublisher | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._retention = timedelta(seconds=max(retention_seconds, 0.0))
        self._event_publisher = event_publisher
        self._clock = clock

    async def create(
        self,
        *,
        destination_name: str,
        source_url: str | None = None,
        total_bytes: int = 0,
    ) -> TransferJob:
        """Register a new pending job."""

        now = self._clock()
        job = TransferJob(
            id=new_job_id(),
            destination_name=destination_name,
            source_url=source_url,
            total_bytes=max(total_bytes, 0),
            progress_percent=compute_progress_percent(0, total_bytes),
            created_at=now,
            updated_at=now,
        )
        await self._store.put(job)
        await self._publish(job)
        return job

    async def find(self, job_id: str) -> TransferJob | None:
        """Return a job snapshot or None."""

        return await self._store.get(job_id)

    async def get(self, job_id: str) -> TransferJob:
        """Return a job snapshot or raise not-found."""

        job = await self._store.get(job_id)
        if job is None:
            raise TransferJobNotFoundError(f"Transfer job '{job_id}' not found.")
        return job

    async def list_jobs(self) -> list[TransferJob]:
        """Return all jobs, newest first."""

        jobs = await self._store.list()
        return sorted(jobs, key=lambda job: job.created_at, reverse=True)

    async def mark_active(
        self,
        job_id: str,
        *,
        strategy: str | None = None,
        destination_name: str | None = None,
        total_bytes: int | None = None,
    ) -> TransferJob:
        """Move a job to `active`, optionally naming the running strategy."""

        job = await self.get(job_id)
        changes: dict[str, Any] = {"status": TransferJobStatus.ACTIVE}
        if strategy is not None:
            changes["strategy"] = strategy
        if destination_name is not None:
            changes["destination_name"] = destination_name
        if total_bytes:
            changes["total_bytes"] = max(job.total_bytes, total_bytes)
            changes["progress_percent"] = self._next_percent(
                job, job.bytes_transferred, changes["total_bytes"]
            )
        return await self._write(job, **changes)

    async def update_progress(
        self,
        job_id: str,
        *,
        bytes_transferred: int,
        total_bytes: int | None = None,
        rate_mbps: float | None = None,
    ) -> TransferJob:
        """Record progress; byte counts and percentages never move backwards."""

        job = await self.get(job_id)
        transferred = max(job.bytes_transferred, bytes_transferred)
        total = job.total_bytes if not total_bytes else max(total_bytes, 0)
        changes: dict[str, Any] = {
            "bytes_transferred": transferred,
            "total_bytes": total,
            "progress_percent": self._next_percent(job, transferred, total),
        }
        if rate_mbps is not None:
            changes["instantaneous_rate_mbps"] = max(rate_mbps, 0.0)
        return await self._write(job, **changes)

    async def record_attempt(self, job_id: str, attempt: StrategyAttempt) -> TransferJob:
        """Append a skipped/failed strategy attempt to the job history."""

        job = await self.get(job_id)
        return await self._write(job, attempts=(*job.attempts, attempt))

    async def complete(
        self,
        job_id: str,
        *,
        bytes_transferred: int,
        total_bytes: int | None = None,
        destination_name: str | None = None,
        strategy: str | None = None,
        rate_mbps: float | None = None,
    ) -> TransferJob:
        """Move a job to `completed` with its final byte counts."""

        job = await self.get(job_id)
        transferred = max(job.bytes_transferred, bytes_transferred)
        changes: dict[str, Any] = {
            "status": TransferJobStatus.COMPLETED,
            "bytes_transferred": transferred,
            "total_bytes": max(total_bytes or 0, transferred),
            "progress_percent": compute_progress_percent(transferred, transferred, completed=True),
            "finished_at": self._clock(),
            "error": None,
        }
        if destination_name is not None:
            changes["destination_name"] = destination_name
        if strategy is not None:
            changes["strategy"] = strategy
        if rate_mbps is not None:
            changes["instantaneous_rate_mbps"] = max(rate_mbps, 0.0)
        return await self._write(job, **changes)

    async def fail(self, job_id: str, error: str) -> TransferJob:
        """Move a job to `failed` with a human-readable cause."""

        job = await self.get(job_id)
        return await self._write(
            job,
            status=TransferJobStatus.FAILED,
            error=error or "Transfer failed",
            finished_at=self._clock(),
        )

    async def delete(self, job_id: str) -> None:
        """Forget a job; unknown ids are a no-op."""

        await self._store.delete(job_id)

    async def evict_expired(self) -> int:
        """Remove terminal jobs older than the retention window."""

        cutoff = self._clock() - self._retention
        evicted = 0
        for job in await self._store.list():
            if job.is_terminal and job.finished_at is not None and job.finished_at <= cutoff:
                await self._store.delete(job.id)
                evicted += 1
        return evicted

    async def _write(self, job: TransferJob, **changes: Any) -> TransferJob:
        if job.is_terminal:
            raise TransferConflictError(
                f"Transfer job '{job.id}' is already {job.status.value}."
            )
        target = changes.get("status", job.status)
        if not is_forward_transition(job.status, target):
            raise TransferConflictError(
                f"Transfer job '{job.id}' cannot move from {job.status.value} to {target.value}."
            )

        updated = replace(job, updated_at=self._clock(), **changes)
        await self._store.put(updated)
        await self._publish(updated)
        return updated

    async def _publish(self, job: TransferJob) -> None:
        if self._event_publisher is None:
            return
        try:
            await self._event_publisher.publish_progress(job)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to publish progress for job '%s': %s", job.id, exc)

    def _next_percent(self, job: TransferJob, transferred: int, total: int) -> int | None:
        percent = compute_progress_percent(transferred, total)
        if percent is None or job.progress_percent is None:
            return percent
        return max(percent, job.progress_percent)


__all__ = ["JobRegistry", "new_job_id"]
