"""No-op job event publisher."""

from __future__ import annotations

from streamverse_ingest.domain.jobs import TransferJob
from streamverse_ingest.domain.ports import JobEventPublisher


class NoopJobEventPublisher(JobEventPublisher):
    """No-op implementation for environments without event streaming."""

    async def publish_progress(self, job: TransferJob) -> None:
        _ = job


__all__ = ["NoopJobEventPublisher"]
