from __future__ import annotations

import asyncio
import random
from collections.abc import AsyncIterator, Sequence

import pytest

from streamverse_ingest.domain.errors import SourceError, StagingError
from streamverse_ingest.domain.objects import ObjectInfo
from streamverse_ingest.infrastructure.sources import AsyncIteratorSource
from streamverse_ingest.infrastructure.storage import InMemoryBlockStore
from streamverse_ingest.infrastructure.transfers import ChunkedTransferEngine, ChunkedTransferResult

MIB = 1024 * 1024


class FakeBlockStore:
    """Block store that tracks concurrency, staged sizes, and commits."""

    def __init__(
        self,
        *,
        seed: int = 7,
        max_delay_seconds: float = 0.005,
        fail_block_ids: set[str] | None = None,
        keep_data: bool = True,
    ) -> None:
        self._random = random.Random(seed)
        self._max_delay_seconds = max_delay_seconds
        self._fail_block_ids = fail_block_ids or set()
        self._keep_data = keep_data
        self.staged: dict[str, bytes] = {}
        self.staged_sizes: dict[str, int] = {}
        self.completion_order: list[str] = []
        self.commits: list[tuple[str, list[str], str]] = []
        self.discarded: list[str] = []
        self.staging_ids: set[str] = set()
        self.in_flight = 0
        self.peak_in_flight = 0

    async def ensure_container(self) -> None:
        return None

    async def stage_block(
        self,
        object_name: str,
        block_id: str,
        data: bytes,
        *,
        staging_id: str,
    ) -> None:
        self.staging_ids.add(staging_id)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self._random.random() * self._max_delay_seconds)
            if block_id in self._fail_block_ids:
                raise RuntimeError(f"stage of {block_id} rejected")
            self.staged_sizes[block_id] = len(data)
            if self._keep_data:
                self.staged[block_id] = bytes(data)
            self.completion_order.append(block_id)
        finally:
            self.in_flight -= 1

    async def commit(
        self,
        object_name: str,
        block_ids: Sequence[str],
        content_type: str,
        *,
        staging_id: str,
    ) -> None:
        self.commits.append((object_name, list(block_ids), content_type))

    async def discard_blocks(
        self,
        object_name: str,
        block_ids: Sequence[str],
        *,
        staging_id: str,
    ) -> None:
        self.discarded.extend(block_ids)

    async def exists(self, object_name: str) -> ObjectInfo | None:
        return None

    async def read_range(self, object_name: str, start: int, end: int) -> bytes:
        raise NotImplementedError

    def committed_payload(self) -> bytes:
        _, block_ids, _ = self.commits[-1]
        return b"".join(self.staged[block_id] for block_id in block_ids)


class RecordingProgress:
    def __init__(self) -> None:
        self.reports: list[tuple[int, int | None, bool]] = []

    async def report(
        self,
        bytes_transferred: int,
        total_bytes: int | None = None,
        *,
        force: bool = False,
    ) -> None:
        self.reports.append((bytes_transferred, total_bytes, force))


async def _chunks(payload: bytes, chunk_size: int) -> AsyncIterator[bytes]:
    for index in range(0, len(payload), chunk_size):
        await asyncio.sleep(0)
        yield payload[index : index + chunk_size]


async def _repeated(chunk: bytes, count: int) -> AsyncIterator[bytes]:
    for _ in range(count):
        await asyncio.sleep(0)
        yield chunk


async def _broken_after(payload: bytes, chunk_size: int) -> AsyncIterator[bytes]:
    async for chunk in _chunks(payload, chunk_size):
        yield chunk
    raise ConnectionResetError("peer went away")


def test_hundred_mib_source_commits_four_blocks_in_order() -> None:
    store = FakeBlockStore(keep_data=False, max_delay_seconds=0.02)
    engine = ChunkedTransferEngine(store, block_size_bytes=32 * MIB, stage_concurrency=4)
    progress = RecordingProgress()
    source = AsyncIteratorSource(
        _repeated(b"\0" * MIB, 100),
        total_bytes=100 * MIB,
        content_type="video/mp4",
    )

    result = asyncio.run(engine.run(source, object_name="big.mp4", progress=progress))

    assert len(store.commits) == 1
    object_name, block_ids, content_type = store.commits[0]
    assert object_name == "big.mp4"
    assert content_type == "video/mp4"
    assert block_ids == ["blk-00000000", "blk-00000001", "blk-00000002", "blk-00000003"]
    assert [store.staged_sizes[block_id] for block_id in block_ids] == [
        32 * MIB,
        32 * MIB,
        32 * MIB,
        4 * MIB,
    ]
    assert result.bytes_transferred == 100 * MIB
    assert result.block_count == 4
    assert result.peak_in_flight <= 4
    assert store.peak_in_flight <= 4
    assert progress.reports[-1][:2] == (100 * MIB, 100 * MIB)


def test_commit_order_comes_from_ordinals_when_stages_finish_out_of_order() -> None:
    payload = bytes(range(256)) * 40
    store = FakeBlockStore(seed=3, max_delay_seconds=0.01)
    engine = ChunkedTransferEngine(store, block_size_bytes=100, stage_concurrency=5)

    asyncio.run(
        engine.run(
            AsyncIteratorSource(_chunks(payload, 37)),
            object_name="clip.mov",
            progress=RecordingProgress(),
        )
    )

    _, block_ids, content_type = store.commits[0]
    assert store.completion_order != sorted(store.completion_order)
    assert block_ids == sorted(block_ids)
    assert store.committed_payload() == payload
    assert content_type == "video/quicktime"


def test_in_flight_stages_never_exceed_cap() -> None:
    store = FakeBlockStore(max_delay_seconds=0.01)
    engine = ChunkedTransferEngine(store, block_size_bytes=10, stage_concurrency=3)

    result = asyncio.run(
        engine.run(
            AsyncIteratorSource(_chunks(b"x" * 1_000, 64)),
            object_name="a.mp4",
            progress=RecordingProgress(),
        )
    )

    assert result.block_count == 100
    assert store.peak_in_flight <= 3
    assert result.peak_in_flight <= 3


def test_failed_stage_prevents_commit_and_discards_blocks() -> None:
    store = FakeBlockStore(fail_block_ids={"blk-00000002"})
    engine = ChunkedTransferEngine(store, block_size_bytes=10, stage_concurrency=2)

    with pytest.raises(StagingError, match="blk-00000002|block 2"):
        asyncio.run(
            engine.run(
                AsyncIteratorSource(_chunks(b"y" * 100, 10)),
                object_name="broken.mp4",
                progress=RecordingProgress(),
            )
        )

    assert store.commits == []
    assert "blk-00000000" in store.discarded
    assert "blk-00000002" in store.discarded


def test_source_failure_mid_stream_prevents_commit() -> None:
    store = FakeBlockStore()
    engine = ChunkedTransferEngine(store, block_size_bytes=10, stage_concurrency=2)

    with pytest.raises(SourceError, match="Upload stream failed"):
        asyncio.run(
            engine.run(
                AsyncIteratorSource(_broken_after(b"z" * 35, 5)),
                object_name="partial.mp4",
                progress=RecordingProgress(),
            )
        )

    assert store.commits == []
    assert store.discarded


def test_progress_is_monotonic_and_first_report_is_zero() -> None:
    store = FakeBlockStore()
    engine = ChunkedTransferEngine(store, block_size_bytes=16, stage_concurrency=2)
    progress = RecordingProgress()

    asyncio.run(
        engine.run(
            AsyncIteratorSource(_chunks(b"p" * 500, 7), total_bytes=500),
            object_name="p.mp4",
            progress=progress,
        )
    )

    values = [bytes_transferred for bytes_transferred, _, _ in progress.reports]
    assert progress.reports[0] == (0, 500, True)
    assert values == sorted(values)
    assert values[-1] == 500


def test_unknown_length_reports_final_size_as_total() -> None:
    store = FakeBlockStore()
    engine = ChunkedTransferEngine(store, block_size_bytes=8, stage_concurrency=2)
    progress = RecordingProgress()

    result = asyncio.run(
        engine.run(
            AsyncIteratorSource(_chunks(b"u" * 30, 4)),
            object_name="u.mp4",
            progress=progress,
        )
    )

    assert progress.reports[0] == (0, None, True)
    assert progress.reports[-1] == (30, 30, True)
    assert result.block_count == 4


def test_exact_multiple_of_block_size_has_no_empty_trailing_block() -> None:
    store = FakeBlockStore()
    engine = ChunkedTransferEngine(store, block_size_bytes=10, stage_concurrency=2)

    result = asyncio.run(
        engine.run(
            AsyncIteratorSource(_chunks(b"e" * 40, 3)),
            object_name="e.mp4",
            progress=RecordingProgress(),
        )
    )

    assert result.block_count == 4
    assert all(size == 10 for size in store.staged_sizes.values())


def test_empty_source_commits_empty_object() -> None:
    async def scenario() -> bytes:
        store = InMemoryBlockStore()
        engine = ChunkedTransferEngine(store, block_size_bytes=10, stage_concurrency=2)
        await engine.run(
            AsyncIteratorSource(_chunks(b"", 1)),
            object_name="empty.mp4",
            progress=RecordingProgress(),
        )
        info = await store.exists("empty.mp4")
        assert info is not None
        assert info.size == 0
        return await store.read_range("empty.mp4", 0, 0)

    assert asyncio.run(scenario()) == b""


def test_in_memory_store_round_trip_keeps_bytes() -> None:
    payload = bytes(random.Random(1).getrandbits(8) for _ in range(1_000))

    async def scenario() -> bytes:
        store = InMemoryBlockStore()
        engine = ChunkedTransferEngine(store, block_size_bytes=64, stage_concurrency=4)
        await engine.run(
            AsyncIteratorSource(_chunks(payload, 50), content_type="video/quicktime"),
            object_name="rt.mov",
            progress=RecordingProgress(),
        )
        assert store.staged_block_ids("rt.mov") == []
        info = await store.exists("rt.mov")
        assert info is not None
        assert info.content_type == "video/quicktime"
        return await store.read_range("rt.mov", 0, info.size - 1)

    assert asyncio.run(scenario()) == payload


def test_concurrent_runs_to_one_object_name_keep_their_own_blocks() -> None:
    first = b"A" * 5000
    second = b"B" * 5000

    async def scenario() -> tuple[list[object], bytes]:
        store = InMemoryBlockStore()
        engine = ChunkedTransferEngine(store, block_size_bytes=1000, stage_concurrency=2)
        results = await asyncio.gather(
            engine.run(
                AsyncIteratorSource(_chunks(first, 700)),
                object_name="uc.mp4",
                progress=RecordingProgress(),
            ),
            engine.run(
                AsyncIteratorSource(_chunks(second, 700)),
                object_name="uc.mp4",
                progress=RecordingProgress(),
            ),
            return_exceptions=True,
        )
        assert store.staged_block_ids("uc.mp4") == []
        info = await store.exists("uc.mp4")
        assert info is not None
        return list(results), await store.read_range("uc.mp4", 0, info.size - 1)

    results, committed = asyncio.run(scenario())

    assert all(isinstance(result, ChunkedTransferResult) for result in results)
    assert committed in {first, second}


def test_each_run_stages_under_one_fresh_staging_id() -> None:
    store = FakeBlockStore(max_delay_seconds=0)
    engine = ChunkedTransferEngine(store, block_size_bytes=10, stage_concurrency=2)

    for _ in range(2):
        asyncio.run(
            engine.run(
                AsyncIteratorSource(_chunks(b"x" * 35, 10)),
                object_name="same.mp4",
                progress=RecordingProgress(),
            )
        )

    assert len(store.staging_ids) == 2
