"""Chunked transfer engine: stream a byte source into staged blocks.

Bytes are cut into blocks in strict arrival order. Stage calls run under a
concurrency cap and may complete in any order; the commit list is always
rebuilt from block ordinals. Nothing is committed unless every block staged.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import deque
from dataclasses import dataclass, field

from streamverse_ingest.domain.blocks import Block, encode_block_id, ordered_block_ids
from streamverse_ingest.domain.errors import CommitError, StagingError, TransferError
from streamverse_ingest.domain.ports import BlockStore, ByteSource, ProgressSink
from streamverse_ingest.domain.source_resolver import resolve_content_type

_MB = 1024 * 1024
MIN_BLOCK_SIZE_MB = 5
MAX_BLOCK_SIZE_MB = 32
_DEFAULT_BLOCK_SIZE_MB = 8
_DEFAULT_STAGE_CONCURRENCY = 4

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ChunkedTransferResult:
    """Summary of one committed chunked transfer."""

    object_name: str
    bytes_transferred: int
    block_count: int
    content_type: str
    peak_in_flight: int


@dataclass(slots=True)
class _RunState:
    """Mutable bookkeeping for one engine run."""

    object_name: str
    staging_id: str
    total_bytes: int | None
    buffer: bytearray = field(default_factory=bytearray)
    in_flight: deque[asyncio.Task[int]] = field(default_factory=deque)
    staged: dict[int, str] = field(default_factory=dict)
    next_ordinal: int = 0
    bytes_read: int = 0
    peak_in_flight: int = 0


class ChunkedTransferEngine:
    """Move a byte source into a block store with bounded memory."""

    def __init__(
        self,
        block_store: BlockStore,
        *,
        block_size_bytes: int = _DEFAULT_BLOCK_SIZE_MB * _MB,
        stage_concurrency: int = _DEFAULT_STAGE_CONCURRENCY,
    ) -> None:
        if block_size_bytes < 1:
            raise ValueError("block_size_bytes must be >= 1.")
        self._block_store = block_store
        self._block_size_bytes = block_size_bytes
        self._stage_concurrency = max(1, stage_concurrency)

    @property
    def block_size_bytes(self) -> int:
        return self._block_size_bytes

    @property
    def stage_concurrency(self) -> int:
        return self._stage_concurrency

    async def run(
        self,
        source: ByteSource,
        *,
        object_name: str,
        progress: ProgressSink,
        content_type: str | None = None,
        staging_id: str | None = None,
    ) -> ChunkedTransferResult:
        """Stream `source` into `object_name` and commit it exactly once.

        Raises `SourceError` (from the source), `StagingError`, or
        `CommitError`. On any failure, in-flight stage calls are cancelled and
        already staged blocks are discarded best-effort. Blocks are staged
        under `staging_id`, a fresh id per run unless the caller passes one.
        """

        run = _RunState(
            object_name=object_name,
            staging_id=staging_id or uuid.uuid4().hex,
            total_bytes=source.total_bytes or None,
        )
        await progress.report(0, run.total_bytes, force=True)

        try:
            async for chunk in source.chunks():
                if not chunk:
                    continue
                run.buffer.extend(chunk)
                run.bytes_read += len(chunk)
                await progress.report(run.bytes_read, run.total_bytes)

                while len(run.buffer) >= self._block_size_bytes:
                    await self._wait_for_slot(run, progress)
                    self._dispatch(run, self._cut(run, self._block_size_bytes))

            if run.buffer:
                await self._wait_for_slot(run, progress)
                self._dispatch(run, self._cut(run, len(run.buffer)))

            while run.in_flight:
                await self._settle_oldest(run, progress)
        except BaseException:
            await self._abandon(run)
            raise

        resolved_type = resolve_content_type(content_type or source.content_type, object_name)
        try:
            block_ids = ordered_block_ids(run.staged)
            await self._block_store.commit(
                object_name,
                block_ids,
                resolved_type,
                staging_id=run.staging_id,
            )
        except TransferError:
            await self._discard(run)
            raise
        except Exception as exc:
            await self._discard(run)
            raise CommitError(f"Commit of '{object_name}' failed: {exc}") from exc

        await progress.report(run.bytes_read, run.total_bytes or run.bytes_read, force=True)
        logger.info(
            "Committed '%s': %d bytes in %d blocks.",
            object_name,
            run.bytes_read,
            len(block_ids),
        )
        return ChunkedTransferResult(
            object_name=object_name,
            bytes_transferred=run.bytes_read,
            block_count=len(block_ids),
            content_type=resolved_type,
            peak_in_flight=run.peak_in_flight,
        )

    def _cut(self, run: _RunState, size: int) -> Block:
        data = bytes(run.buffer[:size])
        del run.buffer[:size]
        block = Block(ordinal=run.next_ordinal, data=data)
        run.next_ordinal += 1
        return block

    def _dispatch(self, run: _RunState, block: Block) -> None:
        task = asyncio.create_task(
            self._stage(run, block),
            name=f"stage-{run.object_name}-{block.ordinal}",
        )
        run.in_flight.append(task)
        run.peak_in_flight = max(run.peak_in_flight, len(run.in_flight))

    async def _wait_for_slot(self, run: _RunState, progress: ProgressSink) -> None:
        self._raise_first_failure(run)
        while len(run.in_flight) >= self._stage_concurrency:
            await self._settle_oldest(run, progress)

    async def _settle_oldest(self, run: _RunState, progress: ProgressSink) -> None:
        task = run.in_flight.popleft()
        ordinal = await task
        run.staged[ordinal] = encode_block_id(ordinal)
        await progress.report(run.bytes_read, run.total_bytes)

    def _raise_first_failure(self, run: _RunState) -> None:
        for task in run.in_flight:
            if task.done() and not task.cancelled():
                exc = task.exception()
                if exc is not None:
                    raise exc

    async def _stage(self, run: _RunState, block: Block) -> int:
        try:
            await self._block_store.stage_block(
                run.object_name,
                block.block_id,
                block.data,
                staging_id=run.staging_id,
            )
        except asyncio.CancelledError:
            raise
        except TransferError:
            raise
        except Exception as exc:
            raise StagingError(
                f"Staging block {block.ordinal} of '{run.object_name}' failed: {exc}"
            ) from exc
        return block.ordinal

    async def _abandon(self, run: _RunState) -> None:
        pending = list(run.in_flight)
        run.in_flight.clear()
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        await self._discard(run)

    async def _discard(self, run: _RunState) -> None:
        if run.next_ordinal == 0:
            return
        block_ids = [encode_block_id(ordinal) for ordinal in range(run.next_ordinal)]
        try:
            await self._block_store.discard_blocks(
                run.object_name,
                block_ids,
                staging_id=run.staging_id,
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "Failed to discard %d staged blocks of '%s': %s",
                len(block_ids),
                run.object_name,
                exc,
            )


def clamp_block_size_mb(block_size_mb: int) -> int:
    """Clamp a configured block size to the supported range."""

    return max(MIN_BLOCK_SIZE_MB, min(MAX_BLOCK_SIZE_MB, block_size_mb))


__all__ = [
    "ChunkedTransferEngine",
    "ChunkedTransferResult",
    "MAX_BLOCK_SIZE_MB",
    "MIN_BLOCK_SIZE_MB",
    "clamp_block_size_mb",
]
