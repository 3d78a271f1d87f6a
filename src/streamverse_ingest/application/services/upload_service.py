"""Browser upload sessions: block-by-block and single streaming uploads."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterable, Callable
from contextlib import suppress
from dataclasses import dataclass, field

from streamverse_ingest.application.job_registry import JobRegistry
from streamverse_ingest.application.progress import JobProgressReporter
from streamverse_ingest.application.services.transfer_service import DestinationGuard
from streamverse_ingest.domain.blocks import decode_block_id, ordered_block_ids
from streamverse_ingest.domain.errors import (
    BlockOrderError,
    TransferConflictError,
    TransferError,
    TransferJobNotFoundError,
    TransferValidationError,
)
from streamverse_ingest.domain.jobs import TransferJob
from streamverse_ingest.domain.ports import BlockStore
from streamverse_ingest.domain.source_resolver import derive_destination_name, resolve_content_type
from streamverse_ingest.infrastructure.sources.stream_source import AsyncIteratorSource
from streamverse_ingest.infrastructure.transfers.chunked_transfer_engine import (
    MAX_BLOCK_SIZE_MB,
    ChunkedTransferEngine,
)

BLOCK_UPLOAD_STRATEGY = "block_upload"
STREAM_UPLOAD_STRATEGY = "stream_upload"
ABORTED_ERROR = "Upload aborted"
EXPIRED_ERROR = "Upload session expired"
_BYTES_PER_MB = 1024 * 1024
_DEFAULT_SESSION_IDLE_SECONDS = 900.0

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _UploadSession:
    job_id: str
    object_name: str
    content_type: str | None
    started_at: float
    last_activity_at: float
    block_ids: dict[int, str] = field(default_factory=dict)
    block_sizes: dict[int, int] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def uploaded_bytes(self) -> int:
        return sum(self.block_sizes.values())


@dataclass(slots=True, frozen=True)
class StagedBlock:
    """Acknowledgement for one staged upload block."""

    block_id: str
    job: TransferJob


class UploadSessionService:
    """Accept uploads from browsers into the block store.

    Block sessions are process-local; the session id is the registry job id
    and also namespaces the session's staged blocks. Sessions idle for longer
    than `session_idle_seconds` are failed by `expire_idle_sessions`.
    """

    def __init__(
        self,
        registry: JobRegistry,
        block_store: BlockStore,
        engine: ChunkedTransferEngine,
        *,
        destination: DestinationGuard | None = None,
        progress_interval_seconds: float = 1.0,
        max_block_bytes: int = MAX_BLOCK_SIZE_MB * _BYTES_PER_MB,
        session_idle_seconds: float = _DEFAULT_SESSION_IDLE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._block_store = block_store
        self._engine = engine
        self._destination = destination or DestinationGuard(block_store)
        self._progress_interval_seconds = progress_interval_seconds
        self._max_block_bytes = max(1, max_block_bytes)
        self._session_idle_seconds = max(session_idle_seconds, 0.0)
        self._clock = clock
        self._sessions: dict[str, _UploadSession] = {}

    async def init(
        self,
        file_name: str,
        *,
        content_type: str | None = None,
        total_bytes: int = 0,
    ) -> TransferJob:
        """Open a block upload session and its job."""

        await self._destination.ensure()
        object_name = derive_destination_name(
            url="",
            custom_name=file_name,
            content_type=content_type,
        )
        job = await self._registry.create(destination_name=object_name, total_bytes=total_bytes)
        now = self._clock()
        self._sessions[job.id] = _UploadSession(
            job_id=job.id,
            object_name=object_name,
            content_type=content_type,
            started_at=now,
            last_activity_at=now,
        )
        logger.info("Upload session '%s' opened for '%s'.", job.id, object_name)
        return job

    @property
    def max_block_bytes(self) -> int:
        return self._max_block_bytes

    async def stage_block(self, upload_id: str, block_id: str, data: bytes) -> StagedBlock:
        """Stage one block; re-sending a block id replaces it."""

        ordinal = decode_block_id(block_id)
        if len(data) > self._max_block_bytes:
            raise TransferValidationError(
                f"Block '{block_id}' is {len(data)} bytes; "
                f"blocks may be at most {self._max_block_bytes} bytes."
            )
        session = await self._session(upload_id)
        session.last_activity_at = self._clock()
        await self._block_store.stage_block(
            session.object_name,
            block_id,
            data,
            staging_id=session.job_id,
        )

        async with session.lock:
            session.last_activity_at = self._clock()
            first_block = not session.block_ids
            session.block_ids[ordinal] = block_id
            session.block_sizes[ordinal] = len(data)
            if first_block:
                await self._registry.mark_active(upload_id, strategy=BLOCK_UPLOAD_STRATEGY)
            job = await self._registry.update_progress(
                upload_id,
                bytes_transferred=session.uploaded_bytes,
                rate_mbps=self._rate_mbps(session),
            )
        return StagedBlock(block_id=block_id, job=job)

    async def complete(self, upload_id: str) -> TransferJob:
        """Commit all staged blocks in ordinal order."""

        session = await self._session(upload_id)
        async with session.lock:
            try:
                block_ids = ordered_block_ids(session.block_ids)
            except BlockOrderError as exc:
                raise TransferValidationError(str(exc)) from exc
            self._check_block_sizes(session)

            content_type = resolve_content_type(session.content_type, session.object_name)
            try:
                await self._block_store.commit(
                    session.object_name,
                    block_ids,
                    content_type,
                    staging_id=session.job_id,
                )
            except TransferError as exc:
                self._sessions.pop(upload_id, None)
                await self._block_store.discard_blocks(
                    session.object_name,
                    block_ids,
                    staging_id=session.job_id,
                )
                await self._registry.fail(upload_id, str(exc))
                raise

            self._sessions.pop(upload_id, None)
            uploaded = session.uploaded_bytes
            job = await self._registry.complete(
                upload_id,
                bytes_transferred=uploaded,
                total_bytes=uploaded,
                strategy=BLOCK_UPLOAD_STRATEGY,
                rate_mbps=self._rate_mbps(session),
            )
        logger.info(
            "Upload '%s' committed as '%s' (%d bytes, %d blocks).",
            upload_id,
            session.object_name,
            uploaded,
            len(block_ids),
        )
        return job

    async def abort(self, upload_id: str) -> TransferJob:
        """Discard staged blocks and fail the session's job."""

        session = self._sessions.pop(upload_id, None)
        if session is None:
            job = await self._registry.get(upload_id)
            if job.is_terminal:
                return job
            return await self._registry.fail(upload_id, ABORTED_ERROR)

        async with session.lock:
            job = await self._close_session(session, ABORTED_ERROR)
        logger.info("Upload session '%s' aborted.", upload_id)
        return job

    async def expire_idle_sessions(self) -> int:
        """Fail sessions with no block activity within the idle window.

        Their staged blocks are discarded; the failed jobs then age out of the
        registry like any other terminal job.
        """

        cutoff = self._clock() - self._session_idle_seconds
        idle = [
            session
            for session in list(self._sessions.values())
            if session.last_activity_at <= cutoff and not session.lock.locked()
        ]
        expired = 0
        for session in idle:
            if self._sessions.pop(session.job_id, None) is None:
                continue
            async with session.lock:
                try:
                    await self._close_session(session, EXPIRED_ERROR)
                except (TransferConflictError, TransferJobNotFoundError):
                    continue
            expired += 1
            logger.warning(
                "Upload session '%s' for '%s' expired after %.0f idle seconds.",
                session.job_id,
                session.object_name,
                self._session_idle_seconds,
            )
        return expired

    async def stream_upload(
        self,
        file_name: str,
        stream: AsyncIterable[bytes],
        *,
        content_type: str | None = None,
        total_bytes: int | None = None,
    ) -> TransferJob:
        """Feed one request body through the chunked engine; return the final job."""

        await self._destination.ensure()
        object_name = derive_destination_name(
            url="",
            custom_name=file_name,
            content_type=content_type,
        )
        job = await self._registry.create(
            destination_name=object_name,
            total_bytes=total_bytes or 0,
        )
        await self._registry.mark_active(job.id, strategy=STREAM_UPLOAD_STRATEGY)
        reporter = JobProgressReporter(
            self._registry,
            job.id,
            interval_seconds=self._progress_interval_seconds,
        )
        source = AsyncIteratorSource(stream, total_bytes=total_bytes, content_type=content_type)
        try:
            result = await self._engine.run(
                source,
                object_name=object_name,
                progress=reporter,
                content_type=content_type,
            )
        except asyncio.CancelledError:
            with suppress(TransferConflictError, TransferJobNotFoundError):
                await self._registry.fail(job.id, ABORTED_ERROR)
            raise
        except TransferError as exc:
            logger.warning("Streaming upload '%s' failed: %s", job.id, exc)
            return await self._registry.fail(job.id, str(exc))

        return await self._registry.complete(
            job.id,
            bytes_transferred=result.bytes_transferred,
            total_bytes=result.bytes_transferred,
            strategy=STREAM_UPLOAD_STRATEGY,
            rate_mbps=reporter.rate_mbps(),
        )

    async def _session(self, upload_id: str) -> _UploadSession:
        session = self._sessions.get(upload_id)
        if session is not None:
            return session
        job = await self._registry.get(upload_id)
        if job.is_terminal:
            raise TransferConflictError(f"Upload '{upload_id}' is already {job.status.value}.")
        raise TransferJobNotFoundError(f"Upload session '{upload_id}' not found.")

    async def _close_session(self, session: _UploadSession, error: str) -> TransferJob:
        await self._block_store.discard_blocks(
            session.object_name,
            list(session.block_ids.values()),
            staging_id=session.job_id,
        )
        return await self._registry.fail(session.job_id, error)

    def _check_block_sizes(self, session: _UploadSession) -> None:
        minimum = self._block_store.min_block_bytes
        ordinals = sorted(session.block_sizes)
        undersized = [
            session.block_ids[ordinal]
            for ordinal in ordinals[:-1]
            if session.block_sizes[ordinal] < minimum
        ]
        if undersized:
            raise TransferValidationError(
                f"Blocks {undersized[:5]} are smaller than {minimum} bytes; "
                "only the last block may be smaller."
            )

    def _rate_mbps(self, session: _UploadSession) -> float:
        elapsed = self._clock() - session.started_at
        if elapsed <= 0:
            return 0.0
        return (session.uploaded_bytes / _BYTES_PER_MB) / elapsed


__all__ = ["ABORTED_ERROR", "EXPIRED_ERROR", "StagedBlock", "UploadSessionService"]
