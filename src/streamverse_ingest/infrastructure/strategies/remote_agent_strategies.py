"""Strategies that delegate the transfer to a remote agent."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from streamverse_ingest.application.deadlines import attempt_with_deadline
from streamverse_ingest.domain.errors import RemoteAgentError
from streamverse_ingest.domain.jobs import RemoteTransferStatus, TransferJobStatus
from streamverse_ingest.domain.ports import ProgressSink, RemoteTransferAgent, TransferStrategy
from streamverse_ingest.domain.transfer_plans import StrategyResult, TransferPlan

_DEFAULT_POLL_INTERVAL_SECONDS = 1.0
_DEFAULT_STALL_TIMEOUT_SECONDS = 60.0
_DEFAULT_START_TIMEOUT_SECONDS = 30.0

logger = logging.getLogger(__name__)


class _RemoteAgentStrategy(TransferStrategy):
    """Start a remote job, mirror its progress, and cancel it when it stalls."""

    strategy_name = "remote_agent"

    def __init__(
        self,
        agent: RemoteTransferAgent,
        *,
        poll_interval_seconds: float = _DEFAULT_POLL_INTERVAL_SECONDS,
        stall_timeout_seconds: float = _DEFAULT_STALL_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._agent = agent
        self._poll_interval_seconds = max(poll_interval_seconds, 0.0)
        self._stall_timeout_seconds = max(stall_timeout_seconds, 0.0)
        self._clock = clock

    @property
    def name(self) -> str:
        return self.strategy_name

    async def _follow(
        self,
        plan: TransferPlan,
        progress: ProgressSink,
        remote_job_id: str,
    ) -> StrategyResult:
        """Poll until the remote job ends; cancel it if it makes no progress."""

        last_bytes = -1
        last_change_at = self._clock()
        try:
            while True:
                try:
                    status = await self._agent.get_transfer(remote_job_id)
                except RemoteAgentError as exc:
                    logger.warning(
                        "Polling %s job '%s' failed: %s", self.name, remote_job_id, exc
                    )
                    status = None

                if status is not None:
                    if status.status is TransferJobStatus.COMPLETED:
                        return self._success(plan, status)
                    if status.status is TransferJobStatus.FAILED:
                        return StrategyResult.retryable(
                            status.error or f"{self.name} reported failure"
                        )
                    if status.bytes_transferred > last_bytes:
                        last_bytes = status.bytes_transferred
                        last_change_at = self._clock()
                        await progress.report(
                            status.bytes_transferred,
                            status.total_bytes or plan.total_bytes_hint or None,
                        )

                if self._clock() - last_change_at >= self._stall_timeout_seconds:
                    await self._cancel_remote(remote_job_id)
                    return StrategyResult.retryable(
                        f"{self.name} stalled: no progress for "
                        f"{self._stall_timeout_seconds:g} seconds"
                    )
                await asyncio.sleep(self._poll_interval_seconds)
        except asyncio.CancelledError:
            await self._cancel_remote(remote_job_id)
            raise

    def _success(self, plan: TransferPlan, status: RemoteTransferStatus) -> StrategyResult:
        return StrategyResult.success(
            object_name=status.destination_name or plan.destination_name,
            bytes_transferred=status.bytes_transferred,
            total_bytes=status.total_bytes or status.bytes_transferred,
        )

    async def _cancel_remote(self, remote_job_id: str) -> None:
        try:
            await self._agent.cancel_transfer(remote_job_id)
        except RemoteAgentError as exc:
            logger.warning("Cancelling %s job '%s' failed: %s", self.name, remote_job_id, exc)
        else:
            logger.info("Cancelled %s job '%s'.", self.name, remote_job_id)


class CredentialedAgentStrategy(_RemoteAgentStrategy):
    """Hand credential-gated sources to an agent that holds the caller's session."""

    strategy_name = "credentialed_agent"

    def applies_to(self, plan: TransferPlan) -> bool:
        return plan.source.requires_credential

    async def attempt(self, plan: TransferPlan, progress: ProgressSink) -> StrategyResult:
        try:
            remote_job_id = await self._agent.start_transfer(
                source_url=plan.source_url,
                destination_name=plan.destination_name,
                credential=plan.credential,
            )
        except RemoteAgentError as exc:
            return StrategyResult.retryable(str(exc))

        logger.info("Job '%s' delegated to credentialed agent as '%s'.", plan.job_id, remote_job_id)
        return await self._follow(plan, progress, remote_job_id)


class ServerSideCopyStrategy(_RemoteAgentStrategy):
    """Ask a storage-side copy service to fetch the source itself.

    Initiation, up to the first measurable progress, is bounded by
    `start_timeout_seconds`; on timeout the remote copy is cancelled.
    """

    strategy_name = "server_side_copy"

    def __init__(
        self,
        agent: RemoteTransferAgent,
        *,
        start_timeout_seconds: float = _DEFAULT_START_TIMEOUT_SECONDS,
        poll_interval_seconds: float = _DEFAULT_POLL_INTERVAL_SECONDS,
        stall_timeout_seconds: float = _DEFAULT_STALL_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(
            agent,
            poll_interval_seconds=poll_interval_seconds,
            stall_timeout_seconds=stall_timeout_seconds,
            clock=clock,
        )
        self._start_timeout_seconds = max(start_timeout_seconds, 0.0)

    def applies_to(self, plan: TransferPlan) -> bool:
        if not plan.source.supports_server_side_fetch:
            return False
        return plan.probe is not None and plan.probe.reachable

    async def attempt(self, plan: TransferPlan, progress: ProgressSink) -> StrategyResult:
        started: list[str] = []

        async def compensate() -> None:
            if started:
                await self._cancel_remote(started[0])

        try:
            first = await attempt_with_deadline(
                self._initiate(plan, started),
                self._start_timeout_seconds,
                compensate=compensate,
            )
        except TimeoutError:
            return StrategyResult.retryable(
                f"{self.name} did not start within {self._start_timeout_seconds:g} seconds"
            )
        except RemoteAgentError as exc:
            await compensate()
            return StrategyResult.retryable(str(exc))

        if first.status is TransferJobStatus.COMPLETED:
            return self._success(plan, first)
        if first.status is TransferJobStatus.FAILED:
            return StrategyResult.retryable(first.error or f"{self.name} reported failure")
        return await self._follow(plan, progress, first.job_id)

    async def _initiate(self, plan: TransferPlan, started: list[str]) -> RemoteTransferStatus:
        """Start the copy and wait until it reports bytes or finishes."""

        remote_job_id = await self._agent.start_transfer(
            source_url=plan.resolved.direct_url,
            destination_name=plan.destination_name,
        )
        started.append(remote_job_id)
        logger.info("Job '%s' delegated to server-side copy as '%s'.", plan.job_id, remote_job_id)
        while True:
            status = await self._agent.get_transfer(remote_job_id)
            if status.is_terminal or status.bytes_transferred > 0:
                return status
            await asyncio.sleep(self._poll_interval_seconds)


__all__ = ["CredentialedAgentStrategy", "ServerSideCopyStrategy"]
