"""Strategy that streams the source through this process."""

from __future__ import annotations

import logging

from streamverse_ingest.domain.errors import CommitError, SourceError, StagingError
from streamverse_ingest.domain.ports import ProgressSink, TransferStrategy
from streamverse_ingest.domain.source_resolver import build_request
from streamverse_ingest.domain.transfer_plans import StrategyResult, TransferPlan
from streamverse_ingest.infrastructure.sources.http_source import HttpSourceOpener
from streamverse_ingest.infrastructure.transfers.chunked_transfer_engine import (
    ChunkedTransferEngine,
)

logger = logging.getLogger(__name__)


class LocalStreamingStrategy(TransferStrategy):
    """Fetch the source over HTTP and feed it to the chunked transfer engine.

    Always applicable; this is the last resort of the fallback chain.
    """

    def __init__(self, engine: ChunkedTransferEngine, opener: HttpSourceOpener) -> None:
        self._engine = engine
        self._opener = opener

    @property
    def name(self) -> str:
        return "local_streaming"

    def applies_to(self, plan: TransferPlan) -> bool:
        return True

    async def attempt(self, plan: TransferPlan, progress: ProgressSink) -> StrategyResult:
        url, headers = build_request(plan.resolved, plan.credential)
        try:
            async with self._opener.open(url, headers) as source:
                result = await self._engine.run(
                    source,
                    object_name=plan.destination_name,
                    progress=progress,
                    content_type=source.content_type or plan.content_type_hint,
                )
        except SourceError as exc:
            return StrategyResult.retryable(str(exc))
        except (StagingError, CommitError) as exc:
            logger.error("Job '%s' could not be written: %s", plan.job_id, exc)
            return StrategyResult.fatal(str(exc))

        return StrategyResult.success(
            object_name=result.object_name,
            bytes_transferred=result.bytes_transferred,
        )


__all__ = ["LocalStreamingStrategy"]
