"""Throttled progress reporting into the job registry."""

from __future__ import annotations

import time
from collections.abc import Callable

from streamverse_ingest.application.job_registry import JobRegistry
from streamverse_ingest.domain.ports import ProgressSink

_BYTES_PER_MB = 1024 * 1024
_DEFAULT_INTERVAL_SECONDS = 1.0


class JobProgressReporter(ProgressSink):
    """Progress sink owned by the task that runs one job.

    Rate is a cumulative average since the reporter was created (job start),
    not a sliding window. Non-forced writes are throttled to one per interval.
    """

    def __init__(
        self,
        registry: JobRegistry,
        job_id: str,
        *,
        interval_seconds: float = _DEFAULT_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._job_id = job_id
        self._interval_seconds = max(interval_seconds, 0.0)
        self._clock = clock
        self._started_at = clock()
        self._last_write_at: float | None = None
        self.bytes_transferred = 0
        self.total_bytes = 0

    @property
    def job_id(self) -> str:
        return self._job_id

    def rate_mbps(self) -> float:
        """Return bytes moved per second since job start, in MiB/s."""

        elapsed = self._clock() - self._started_at
        if elapsed <= 0:
            return 0.0
        return (self.bytes_transferred / _BYTES_PER_MB) / elapsed

    async def report(
        self,
        bytes_transferred: int,
        total_bytes: int | None = None,
        *,
        force: bool = False,
    ) -> None:
        self.bytes_transferred = bytes_transferred
        if total_bytes:
            self.total_bytes = total_bytes

        now = self._clock()
        if (
            not force
            and self._last_write_at is not None
            and now - self._last_write_at < self._interval_seconds
        ):
            return
        self._last_write_at = now
        await self._registry.update_progress(
            self._job_id,
            bytes_transferred=bytes_transferred,
            total_bytes=self.total_bytes or None,
            rate_mbps=self.rate_mbps(),
        )


__all__ = ["JobProgressReporter"]
