"""Ports for storage, job state, sources, events, and transfer strategies."""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Protocol, runtime_checkable

from streamverse_ingest.domain.jobs import RemoteTransferStatus, TransferJob
from streamverse_ingest.domain.objects import ObjectInfo
from streamverse_ingest.domain.sources import SourceCredential, SourceProbe
from streamverse_ingest.domain.transfer_plans import StrategyResult, TransferPlan


class BlockStore(Protocol):
    """Block-based object storage capability.

    Implementations hold no per-transfer state and are shared by all jobs.
    Staged blocks are addressed by `(object_name, staging_id, block_id)`;
    every transfer uses its own `staging_id`, so two transfers writing the
    same object name never see each other's blocks.
    """

    @property
    def min_block_bytes(self) -> int:
        """Smallest size a block other than the last may have at commit."""

    async def ensure_container(self) -> None:
        """Create the destination namespace if needed (idempotent)."""

    async def stage_block(
        self,
        object_name: str,
        block_id: str,
        data: bytes,
        *,
        staging_id: str,
    ) -> None:
        """Upload one block; repeating a call for the same block id is safe."""

    async def commit(
        self,
        object_name: str,
        block_ids: Sequence[str],
        content_type: str,
        *,
        staging_id: str,
    ) -> None:
        """Assemble staged blocks, in the given order, into the final object."""

    async def discard_blocks(
        self,
        object_name: str,
        block_ids: Sequence[str],
        *,
        staging_id: str,
    ) -> None:
        """Remove staged blocks of an abandoned transfer."""

    async def exists(self, object_name: str) -> ObjectInfo | None:
        """Return object metadata, or None when absent."""

    async def read_range(self, object_name: str, start: int, end: int) -> bytes:
        """Read bytes `start..end` (inclusive) of a committed object."""


class ByteSource(Protocol):
    """Readable byte stream feeding the chunked transfer engine."""

    @property
    def total_bytes(self) -> int | None:
        """Declared source length, or None when the source omits it."""

    @property
    def content_type(self) -> str | None:
        """Declared media type, if any."""

    def chunks(self) -> AsyncIterator[bytes]:
        """Yield byte batches in arrival order."""


class SourceProber(Protocol):
    """Best-effort preflight of an HTTP source."""

    async def probe(
        self,
        url: str,
        headers: Mapping[str, str] | None = None,
    ) -> SourceProbe:
        """Return reachability and metadata hints; never raises for source problems."""


class JobStore(Protocol):
    """Key-value persistence for job snapshots."""

    async def get(self, job_id: str) -> TransferJob | None:
        """Return one job snapshot."""

    async def put(self, job: TransferJob) -> None:
        """Create or replace one job snapshot."""

    async def delete(self, job_id: str) -> None:
        """Remove one job; unknown ids are ignored."""

    async def list(self) -> list[TransferJob]:
        """Return all job snapshots."""


class JobEventPublisher(Protocol):
    """Outbound publisher for job progress/state changes."""

    async def publish_progress(self, job: TransferJob) -> None:
        """Publish the latest job snapshot."""


@runtime_checkable
class ProgressSink(Protocol):
    """Progress callback handed to a strategy by the job that owns it."""

    async def report(
        self,
        bytes_transferred: int,
        total_bytes: int | None = None,
        *,
        force: bool = False,
    ) -> None:
        """Record progress; implementations may throttle non-forced writes."""


class RemoteTransferAgent(Protocol):
    """A remote process exposing the start/poll/cancel transfer contract."""

    async def start_transfer(
        self,
        *,
        source_url: str,
        destination_name: str,
        credential: SourceCredential | None = None,
    ) -> str:
        """Start a remote job and return its id."""

    async def get_transfer(self, job_id: str) -> RemoteTransferStatus:
        """Return the remote job state."""

    async def cancel_transfer(self, job_id: str) -> None:
        """Actively stop a remote job."""


class TransferStrategy(Protocol):
    """One transfer mechanism tried by the fallback orchestrator."""

    @property
    def name(self) -> str:
        """Stable strategy name recorded on the job."""

    def applies_to(self, plan: TransferPlan) -> bool:
        """Return whether the strategy's preconditions hold for this plan."""

    async def attempt(self, plan: TransferPlan, progress: ProgressSink) -> StrategyResult:
        """Run the transfer and classify the result."""


__all__ = [
    "BlockStore",
    "ByteSource",
    "JobEventPublisher",
    "JobStore",
    "ProgressSink",
    "RemoteTransferAgent",
    "SourceProber",
    "TransferStrategy",
]
