"""Transfer job service: start, observe, cancel, and evict URL imports."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import suppress

from streamverse_ingest.application.job_registry import JobRegistry
from streamverse_ingest.application.orchestrator import FallbackOrchestrator
from streamverse_ingest.domain.api_models import ProgressEvent
from streamverse_ingest.domain.errors import (
    TransferConfigurationError,
    TransferConflictError,
    TransferJobNotFoundError,
)
from streamverse_ingest.domain.jobs import TransferJob, TransferJobStatus
from streamverse_ingest.domain.objects import ObjectInfo
from streamverse_ingest.domain.ports import BlockStore, SourceProber
from streamverse_ingest.domain.source_resolver import (
    build_request,
    derive_destination_name,
    resolve,
    validate_source_url,
)
from streamverse_ingest.domain.sources import (
    ResolvedSource,
    SourceCredential,
    SourceProbe,
    TransferSource,
)
from streamverse_ingest.domain.transfer_plans import TransferPlan

_DEFAULT_STALL_TIMEOUT_SECONDS = 60.0
_DEFAULT_EVICTION_INTERVAL_SECONDS = 30.0
_DEFAULT_WATCH_INTERVAL_SECONDS = 0.5
CANCELLED_ERROR = "Transfer cancelled"
STALLED_ERROR = "Transfer stalled"
NOT_FOUND_ERROR = "Transfer not found"

logger = logging.getLogger(__name__)


class DestinationGuard:
    """Run `BlockStore.ensure_container` once per process before any job exists."""

    def __init__(self, block_store: BlockStore) -> None:
        self._block_store = block_store
        self._ready = False
        self._lock = asyncio.Lock()

    async def ensure(self) -> None:
        if self._ready:
            return
        async with self._lock:
            if self._ready:
                return
            try:
                await self._block_store.ensure_container()
            except TransferConfigurationError:
                raise
            except Exception as exc:  # noqa: BLE001
                raise TransferConfigurationError(
                    f"Destination storage is not available: {exc}"
                ) from exc
            self._ready = True


class TransferService:
    """Own background transfer tasks and the job eviction loop."""

    def __init__(
        self,
        registry: JobRegistry,
        block_store: BlockStore,
        orchestrator: FallbackOrchestrator,
        probe: SourceProber,
        *,
        destination: DestinationGuard | None = None,
        stall_timeout_seconds: float = _DEFAULT_STALL_TIMEOUT_SECONDS,
        eviction_interval_seconds: float = _DEFAULT_EVICTION_INTERVAL_SECONDS,
        watch_interval_seconds: float = _DEFAULT_WATCH_INTERVAL_SECONDS,
        idle_session_sweeper: Callable[[], Awaitable[int]] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._block_store = block_store
        self._orchestrator = orchestrator
        self._probe = probe
        self._destination = destination or DestinationGuard(block_store)
        self._stall_timeout_seconds = max(stall_timeout_seconds, 0.0)
        self._eviction_interval_seconds = max(eviction_interval_seconds, 0.05)
        self._watch_interval_seconds = max(watch_interval_seconds, 0.0)
        self._idle_session_sweeper = idle_session_sweeper
        self._clock = clock
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._eviction_task: asyncio.Task[None] | None = None
        self._eviction_stop = asyncio.Event()

    @property
    def registry(self) -> JobRegistry:
        return self._registry

    @property
    def running_job_ids(self) -> list[str]:
        return [job_id for job_id, task in self._tasks.items() if not task.done()]

    async def startup(self) -> None:
        """Start the eviction loop."""

        task = self._eviction_task
        if task is not None and not task.done():
            return
        self._eviction_stop.clear()
        self._eviction_task = asyncio.create_task(
            self._run_eviction_loop(),
            name="transfer-job-eviction-loop",
        )

    async def shutdown(self) -> None:
        """Stop the eviction loop and cancel in-flight transfers."""

        task = self._eviction_task
        self._eviction_task = None
        if task is not None:
            self._eviction_stop.set()
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        tasks = list(self._tasks.values())
        self._tasks.clear()
        for job_task in tasks:
            job_task.cancel()
        for job_task in tasks:
            with suppress(asyncio.CancelledError):
                await job_task

    async def start(
        self,
        source_url: str,
        *,
        destination_name: str | None = None,
        credential: SourceCredential | None = None,
    ) -> TransferJob:
        """Accept a URL import and run it in the background.

        Input and destination problems raise here, before any job exists.
        """

        resolved = resolve(validate_source_url(source_url))
        await self._destination.ensure()

        job = await self._registry.create(
            destination_name=derive_destination_name(
                url=resolved.direct_url,
                custom_name=destination_name,
            ),
            source_url=resolved.original_url,
        )
        logger.info(
            "Job '%s' accepted for %s (%s).",
            job.id,
            resolved.original_url,
            resolved.service_label or "direct",
        )
        task = asyncio.create_task(
            self._run_job(job.id, resolved, destination_name, credential),
            name=f"transfer-job-{job.id}",
        )
        self._tasks[job.id] = task
        task.add_done_callback(lambda _task, job_id=job.id: self._forget_task(job_id, _task))
        return job

    async def get_job(self, job_id: str) -> TransferJob:
        return await self._registry.get(job_id)

    async def list_jobs(self) -> list[TransferJob]:
        return await self._registry.list_jobs()

    async def cancel_job(self, job_id: str) -> TransferJob:
        """Stop a running job and mark it failed."""

        job = await self._registry.get(job_id)
        if job.is_terminal:
            raise TransferConflictError(f"Transfer job '{job_id}' is already {job.status.value}.")
        await self._stop_task(job_id)
        job = await self._registry.get(job_id)
        if job.is_terminal:
            return job
        logger.info("Job '%s' cancelled.", job_id)
        return await self._registry.fail(job_id, CANCELLED_ERROR)

    async def delete_job(self, job_id: str) -> None:
        """Stop a job if it is running and forget it."""

        await self._stop_task(job_id)
        await self._registry.delete(job_id)

    async def watch(self, job_id: str) -> AsyncIterator[ProgressEvent]:
        """Yield progress frames until the job ends, disappears, or stalls.

        Raises not-found before the first frame if the job is unknown.
        """

        job = await self._registry.get(job_id)
        last_key: tuple[object, ...] | None = None
        last_change_at = self._clock()
        while True:
            if job is None:
                yield ProgressEvent(
                    status=TransferJobStatus.FAILED,
                    message=NOT_FOUND_ERROR,
                    error=NOT_FOUND_ERROR,
                )
                return

            key = (job.status, job.bytes_transferred, job.strategy, len(job.attempts))
            if key != last_key:
                last_key = key
                last_change_at = self._clock()
                event = progress_event_for(job)
                yield event
                if event.is_final:
                    return
            elif (
                job.status is TransferJobStatus.ACTIVE
                and self._clock() - last_change_at >= self._stall_timeout_seconds
            ):
                yield ProgressEvent(
                    status=job.status,
                    message=STALLED_ERROR,
                    progress=job.progress_percent,
                    bytes_transferred=job.bytes_transferred,
                    total_bytes=job.total_bytes,
                    error=STALLED_ERROR,
                    file_name=job.destination_name,
                )
                return

            await asyncio.sleep(self._watch_interval_seconds)
            job = await self._registry.find(job_id)

    async def object_info(self, object_name: str) -> ObjectInfo | None:
        return await self._block_store.exists(object_name)

    async def read_object_range(self, object_name: str, start: int, end: int) -> bytes:
        return await self._block_store.read_range(object_name, start, end)

    async def _run_job(
        self,
        job_id: str,
        resolved: ResolvedSource,
        custom_name: str | None,
        credential: SourceCredential | None,
    ) -> None:
        try:
            plan = await self._plan(job_id, resolved, custom_name, credential)
            await self._orchestrator.run(plan)
        except asyncio.CancelledError:
            raise
        except TransferJobNotFoundError:
            logger.info("Job '%s' was deleted while running.", job_id)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Job '%s' crashed.", job_id)
            with suppress(TransferConflictError, TransferJobNotFoundError):
                await self._registry.fail(job_id, str(exc) or "Transfer failed")

    async def _plan(
        self,
        job_id: str,
        resolved: ResolvedSource,
        custom_name: str | None,
        credential: SourceCredential | None,
    ) -> TransferPlan:
        url, headers = build_request(resolved, credential)
        probe: SourceProbe = await self._probe.probe(url, headers)
        destination_name = derive_destination_name(
            url=probe.final_url or resolved.direct_url,
            custom_name=custom_name,
            content_disposition_filename=probe.content_disposition_filename,
            content_type=probe.content_type,
        )
        await self._registry.mark_active(
            job_id,
            destination_name=destination_name,
            total_bytes=probe.total_bytes or 0,
        )
        return TransferPlan(
            job_id=job_id,
            resolved=resolved,
            destination_name=destination_name,
            source=TransferSource.for_resolved(resolved, probe),
            probe=probe,
            credential=credential,
        )

    async def _stop_task(self, job_id: str) -> None:
        task = self._tasks.pop(job_id, None)
        if task is None or task.done():
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    def _forget_task(self, job_id: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(job_id) is task:
            self._tasks.pop(job_id, None)

    async def _run_eviction_loop(self) -> None:
        """Periodically expire idle upload sessions and drop old terminal jobs."""

        while not self._eviction_stop.is_set():
            if self._idle_session_sweeper is not None:
                try:
                    expired = await self._idle_session_sweeper()
                    if expired:
                        logger.info("Expired %d idle upload sessions.", expired)
                except Exception:
                    logger.exception("Idle upload session sweep failed.")

            try:
                evicted = await self._registry.evict_expired()
                if evicted:
                    logger.info("Evicted %d expired transfer jobs.", evicted)
            except Exception:
                logger.exception("Transfer job eviction failed.")

            try:
                await asyncio.wait_for(
                    self._eviction_stop.wait(),
                    timeout=self._eviction_interval_seconds,
                )
            except TimeoutError:
                pass


def progress_event_for(job: TransferJob) -> ProgressEvent:
    """Render one job snapshot as a push frame."""

    if job.status is TransferJobStatus.COMPLETED:
        message = "Complete!"
    elif job.status is TransferJobStatus.FAILED:
        message = job.error or "Transfer failed"
    elif job.strategy is not None:
        message = f"Transferring via {job.strategy}..."
    elif job.status is TransferJobStatus.ACTIVE:
        message = "Connecting to source..."
    else:
        message = "Waiting to start..."

    error = None
    if job.status is TransferJobStatus.FAILED:
        error = job.error or "Transfer failed"

    return ProgressEvent(
        status=job.status,
        message=message,
        progress=job.progress_percent,
        bytes_transferred=job.bytes_transferred,
        total_bytes=job.total_bytes,
        rate_mbps=round(job.instantaneous_rate_mbps, 3),
        error=error,
        success=True if job.status is TransferJobStatus.COMPLETED else None,
        file_name=job.destination_name,
    )


__all__ = [
    "CANCELLED_ERROR",
    "DestinationGuard",
    "STALLED_ERROR",
    "TransferService",
    "progress_event_for",
]
