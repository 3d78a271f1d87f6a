from __future__ import annotations

import asyncio

import httpx

from streamverse_ingest.domain.errors import RemoteAgentError, StagingError
from streamverse_ingest.domain.jobs import RemoteTransferStatus, StrategyOutcome, TransferJobStatus
from streamverse_ingest.domain.source_resolver import resolve
from streamverse_ingest.domain.sources import SourceCredential, SourceProbe, TransferSource
from streamverse_ingest.domain.transfer_plans import StrategyResult, TransferPlan
from streamverse_ingest.infrastructure.sources import HttpSourceOpener
from streamverse_ingest.infrastructure.storage import InMemoryBlockStore
from streamverse_ingest.infrastructure.strategies import (
    CredentialedAgentStrategy,
    LocalStreamingStrategy,
    ServerSideCopyStrategy,
)
from streamverse_ingest.infrastructure.transfers import ChunkedTransferEngine


class StepClock:
    """Advances by `step` every time it is read."""

    def __init__(self, step: float) -> None:
        self.now = 0.0
        self._step = step

    def __call__(self) -> float:
        self.now += self._step
        return self.now


class FakeAgent:
    def __init__(
        self,
        statuses: list[RemoteTransferStatus] | None = None,
        *,
        start_error: Exception | None = None,
        start_delay: float = 0.0,
    ) -> None:
        self._statuses = list(statuses or [])
        self._start_error = start_error
        self._start_delay = start_delay
        self.started: list[dict[str, object]] = []
        self.cancelled: list[str] = []
        self.polls = 0

    async def start_transfer(
        self,
        *,
        source_url: str,
        destination_name: str,
        credential: SourceCredential | None = None,
    ) -> str:
        if self._start_delay:
            await asyncio.sleep(self._start_delay)
        if self._start_error is not None:
            raise self._start_error
        self.started.append(
            {
                "source_url": source_url,
                "destination_name": destination_name,
                "credential": credential,
            }
        )
        return "remote-1"

    async def get_transfer(self, job_id: str) -> RemoteTransferStatus:
        self.polls += 1
        if len(self._statuses) > 1:
            return self._statuses.pop(0)
        return self._statuses[0]

    async def cancel_transfer(self, job_id: str) -> None:
        self.cancelled.append(job_id)


class RecordingProgress:
    def __init__(self) -> None:
        self.reports: list[tuple[int, int | None]] = []

    async def report(
        self,
        bytes_transferred: int,
        total_bytes: int | None = None,
        *,
        force: bool = False,
    ) -> None:
        self.reports.append((bytes_transferred, total_bytes))


def _status(
    state: TransferJobStatus,
    transferred: int = 0,
    **kwargs: object,
) -> RemoteTransferStatus:
    return RemoteTransferStatus(
        job_id="remote-1",
        status=state,
        bytes_transferred=transferred,
        **kwargs,  # type: ignore[arg-type]
    )


def _plan(
    url: str,
    *,
    probe: SourceProbe | None = None,
    credential: SourceCredential | None = None,
) -> TransferPlan:
    resolved = resolve(url)
    return TransferPlan(
        job_id="job-1",
        resolved=resolved,
        destination_name="clip.mp4",
        source=TransferSource.for_resolved(resolved, probe),
        probe=probe,
        credential=credential,
    )


DIRECT_URL = "https://cdn.example.com/clip.mp4"
GATED_URL = "https://drive.google.com/file/d/abc123/view"


def test_credentialed_agent_applies_only_to_gated_sources() -> None:
    strategy = CredentialedAgentStrategy(FakeAgent())

    assert strategy.name == "credentialed_agent"
    assert strategy.applies_to(_plan(GATED_URL))
    assert not strategy.applies_to(_plan(DIRECT_URL))


def test_credentialed_agent_mirrors_remote_progress() -> None:
    agent = FakeAgent(
        [
            _status(TransferJobStatus.ACTIVE, 10, total_bytes=40),
            _status(TransferJobStatus.ACTIVE, 30, total_bytes=40),
            _status(TransferJobStatus.COMPLETED, 40, total_bytes=40, destination_name="clip.mp4"),
        ]
    )
    credential = SourceCredential(bearer_token="token")
    strategy = CredentialedAgentStrategy(agent, poll_interval_seconds=0)
    progress = RecordingProgress()

    result = asyncio.run(strategy.attempt(_plan(GATED_URL, credential=credential), progress))

    assert result.outcome is StrategyOutcome.SUCCESS
    assert result.bytes_transferred == 40
    assert result.object_name == "clip.mp4"
    assert progress.reports == [(10, 40), (30, 40)]
    assert agent.started[0]["source_url"] == GATED_URL
    assert agent.started[0]["credential"] == credential


def test_credentialed_agent_start_failure_is_retryable() -> None:
    agent = FakeAgent(start_error=RemoteAgentError("POST /transfers failed: 503"))
    strategy = CredentialedAgentStrategy(agent)

    result = asyncio.run(strategy.attempt(_plan(GATED_URL), RecordingProgress()))

    assert result.outcome is StrategyOutcome.RETRYABLE
    assert "503" in (result.error or "")
    assert agent.cancelled == []


def test_remote_failure_status_is_retryable() -> None:
    agent = FakeAgent([_status(TransferJobStatus.FAILED, error="cookie expired")])
    strategy = CredentialedAgentStrategy(agent, poll_interval_seconds=0)

    result = asyncio.run(strategy.attempt(_plan(GATED_URL), RecordingProgress()))

    assert result.outcome is StrategyOutcome.RETRYABLE
    assert result.error == "cookie expired"


def test_stalled_remote_job_is_cancelled() -> None:
    agent = FakeAgent(
        [
            _status(TransferJobStatus.ACTIVE, 5, total_bytes=100),
            _status(TransferJobStatus.ACTIVE, 5, total_bytes=100),
        ]
    )
    strategy = CredentialedAgentStrategy(
        agent,
        poll_interval_seconds=0,
        stall_timeout_seconds=3,
        clock=StepClock(1.0),
    )

    result = asyncio.run(strategy.attempt(_plan(GATED_URL), RecordingProgress()))

    assert result.outcome is StrategyOutcome.RETRYABLE
    assert result.error == "credentialed_agent stalled: no progress for 3 seconds"
    assert agent.cancelled == ["remote-1"]


def test_server_side_copy_preconditions() -> None:
    strategy = ServerSideCopyStrategy(FakeAgent())
    reachable = SourceProbe(reachable=True, total_bytes=10)

    assert strategy.name == "server_side_copy"
    assert strategy.applies_to(_plan(DIRECT_URL, probe=reachable))
    assert not strategy.applies_to(_plan(DIRECT_URL, probe=SourceProbe(reachable=False)))
    assert not strategy.applies_to(_plan(DIRECT_URL))
    assert not strategy.applies_to(_plan(GATED_URL, probe=reachable))


def test_server_side_copy_fetches_the_direct_url() -> None:
    agent = FakeAgent(
        [
            _status(TransferJobStatus.PENDING),
            _status(TransferJobStatus.ACTIVE, 50, total_bytes=100),
            _status(TransferJobStatus.COMPLETED, 100, total_bytes=100),
        ]
    )
    strategy = ServerSideCopyStrategy(agent, poll_interval_seconds=0)
    share_link = "https://www.dropbox.com/s/abc/clip.mp4?dl=0"
    plan = _plan(share_link, probe=SourceProbe(reachable=True))

    result = asyncio.run(strategy.attempt(plan, RecordingProgress()))

    assert result.outcome is StrategyOutcome.SUCCESS
    assert result.bytes_transferred == 100
    assert result.object_name == "clip.mp4"
    assert agent.started[0]["source_url"] == plan.resolved.direct_url
    assert agent.cancelled == []


def test_server_side_copy_that_never_starts_is_cancelled() -> None:
    agent = FakeAgent([_status(TransferJobStatus.PENDING)])
    strategy = ServerSideCopyStrategy(agent, start_timeout_seconds=0.05, poll_interval_seconds=0.01)
    plan = _plan(DIRECT_URL, probe=SourceProbe(reachable=True))

    result = asyncio.run(strategy.attempt(plan, RecordingProgress()))

    assert result.outcome is StrategyOutcome.RETRYABLE
    assert result.error == "server_side_copy did not start within 0.05 seconds"
    assert agent.cancelled == ["remote-1"]


def test_server_side_copy_slow_start_is_timed_out_without_cancel() -> None:
    agent = FakeAgent([_status(TransferJobStatus.ACTIVE, 1)], start_delay=1.0)
    strategy = ServerSideCopyStrategy(agent, start_timeout_seconds=0.05)
    plan = _plan(DIRECT_URL, probe=SourceProbe(reachable=True))

    result = asyncio.run(strategy.attempt(plan, RecordingProgress()))

    assert result.outcome is StrategyOutcome.RETRYABLE
    assert agent.started == []
    assert agent.cancelled == []


def test_local_streaming_commits_source() -> None:
    payload = bytes(range(256)) * 10

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=payload, headers={"content-type": "video/mp4"})

    async def scenario() -> None:
        store = InMemoryBlockStore()
        strategy = LocalStreamingStrategy(
            ChunkedTransferEngine(store, block_size_bytes=1024, stage_concurrency=2),
            HttpSourceOpener(transport=httpx.MockTransport(handler)),
        )
        progress = RecordingProgress()

        result = await strategy.attempt(_plan(DIRECT_URL), progress)

        assert strategy.name == "local_streaming"
        assert strategy.applies_to(_plan(GATED_URL))
        assert result.outcome is StrategyOutcome.SUCCESS
        assert result.bytes_transferred == len(payload)
        assert await store.read_range("clip.mp4", 0, len(payload) - 1) == payload
        assert progress.reports[-1][0] == len(payload)

    asyncio.run(scenario())


def test_local_streaming_source_error_is_retryable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    strategy = LocalStreamingStrategy(
        ChunkedTransferEngine(InMemoryBlockStore(), block_size_bytes=1024),
        HttpSourceOpener(transport=httpx.MockTransport(handler)),
    )

    result = asyncio.run(strategy.attempt(_plan(DIRECT_URL), RecordingProgress()))

    assert result.outcome is StrategyOutcome.RETRYABLE
    assert result.error == "Failed to fetch: 404 Not Found"


def test_local_streaming_staging_error_is_fatal() -> None:
    class BrokenStore(InMemoryBlockStore):
        async def stage_block(
            self,
            object_name: str,
            block_id: str,
            data: bytes,
            *,
            staging_id: str,
        ) -> None:
            raise StagingError("storage rejected block")

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"y" * 3000)

    async def scenario() -> StrategyResult:
        strategy = LocalStreamingStrategy(
            ChunkedTransferEngine(BrokenStore(), block_size_bytes=1024),
            HttpSourceOpener(transport=httpx.MockTransport(handler)),
        )
        return await strategy.attempt(_plan(DIRECT_URL), RecordingProgress())

    result = asyncio.run(scenario())

    assert result.outcome is StrategyOutcome.FATAL
    assert result.error == "storage rejected block"
