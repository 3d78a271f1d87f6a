"""Fallback orchestration over an ordered list of transfer strategies."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from streamverse_ingest.application.job_registry import JobRegistry
from streamverse_ingest.application.progress import JobProgressReporter
from streamverse_ingest.domain.jobs import StrategyAttempt, StrategyOutcome, TransferJob
from streamverse_ingest.domain.ports import TransferStrategy
from streamverse_ingest.domain.transfer_plans import StrategyResult, TransferPlan

_NO_STRATEGY_ERROR = "No transfer strategy applies to this source."

logger = logging.getLogger(__name__)


class FallbackOrchestrator:
    """Try strategies in order until one succeeds or one fails fatally.

    A strategy whose preconditions do not hold is recorded as skipped.
    A retryable failure is recorded on the job and the next strategy runs;
    the job itself only turns `failed` once the chain is exhausted.
    """

    def __init__(
        self,
        strategies: Sequence[TransferStrategy],
        registry: JobRegistry,
        *,
        progress_interval_seconds: float = 1.0,
    ) -> None:
        self._strategies = tuple(strategies)
        self._registry = registry
        self._progress_interval_seconds = progress_interval_seconds

    @property
    def strategy_names(self) -> list[str]:
        return [strategy.name for strategy in self._strategies]

    async def run(self, plan: TransferPlan) -> TransferJob:
        """Drive one job to a terminal state and return the final snapshot."""

        job_id = plan.job_id
        reporter = JobProgressReporter(
            self._registry,
            job_id,
            interval_seconds=self._progress_interval_seconds,
        )
        last_error: str | None = None

        for strategy in self._strategies:
            if not strategy.applies_to(plan):
                await self._registry.record_attempt(
                    job_id,
                    StrategyAttempt(strategy=strategy.name, outcome=StrategyOutcome.SKIPPED),
                )
                continue

            await self._registry.mark_active(job_id, strategy=strategy.name)
            logger.info("Job '%s' trying strategy '%s'.", job_id, strategy.name)
            result = await self._attempt(strategy, plan, reporter)

            if result.outcome is StrategyOutcome.SUCCESS:
                await reporter.report(result.bytes_transferred, result.total_bytes, force=True)
                job = await self._registry.complete(
                    job_id,
                    bytes_transferred=result.bytes_transferred,
                    total_bytes=result.total_bytes,
                    destination_name=result.object_name,
                    strategy=strategy.name,
                    rate_mbps=reporter.rate_mbps(),
                )
                logger.info(
                    "Job '%s' completed via '%s' (%d bytes).",
                    job_id,
                    strategy.name,
                    job.bytes_transferred,
                )
                return job

            last_error = result.error or f"{strategy.name} failed"
            await self._registry.record_attempt(
                job_id,
                StrategyAttempt(strategy=strategy.name, outcome=result.outcome, error=last_error),
            )
            if result.outcome is StrategyOutcome.FATAL:
                logger.warning(
                    "Job '%s' failed fatally in '%s': %s", job_id, strategy.name, last_error
                )
                return await self._registry.fail(job_id, last_error)
            logger.info(
                "Job '%s' strategy '%s' failed, falling back: %s",
                job_id,
                strategy.name,
                last_error,
            )

        return await self._registry.fail(job_id, last_error or _NO_STRATEGY_ERROR)

    async def _attempt(
        self,
        strategy: TransferStrategy,
        plan: TransferPlan,
        reporter: JobProgressReporter,
    ) -> StrategyResult:
        try:
            return await strategy.attempt(plan, reporter)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Strategy '%s' raised for job '%s'.", strategy.name, plan.job_id)
            return StrategyResult.retryable(str(exc) or type(exc).__name__)


__all__ = ["FallbackOrchestrator"]
