"""Transfer plan and strategy result models."""

from __future__ import annotations

from dataclasses import dataclass

from streamverse_ingest.domain.jobs import StrategyOutcome
from streamverse_ingest.domain.sources import (
    ResolvedSource,
    SourceCredential,
    SourceProbe,
    TransferSource,
)


@dataclass(slots=True, frozen=True)
class TransferPlan:
    """Everything a strategy needs to move one source into one object."""

    job_id: str
    resolved: ResolvedSource
    destination_name: str
    source: TransferSource
    probe: SourceProbe | None = None
    credential: SourceCredential | None = None

    @property
    def source_url(self) -> str:
        return self.resolved.original_url

    @property
    def content_type_hint(self) -> str | None:
        return None if self.probe is None else self.probe.content_type

    @property
    def total_bytes_hint(self) -> int:
        if self.probe is None or self.probe.total_bytes is None:
            return 0
        return self.probe.total_bytes


@dataclass(slots=True, frozen=True)
class StrategyResult:
    """Outcome of one strategy attempt."""

    outcome: StrategyOutcome
    bytes_transferred: int = 0
    total_bytes: int = 0
    object_name: str | None = None
    error: str | None = None

    @classmethod
    def success(
        cls,
        *,
        object_name: str,
        bytes_transferred: int,
        total_bytes: int | None = None,
    ) -> StrategyResult:
        return cls(
            outcome=StrategyOutcome.SUCCESS,
            object_name=object_name,
            bytes_transferred=bytes_transferred,
            total_bytes=bytes_transferred if total_bytes is None else total_bytes,
        )

    @classmethod
    def retryable(cls, error: str) -> StrategyResult:
        return cls(outcome=StrategyOutcome.RETRYABLE, error=error)

    @classmethod
    def fatal(cls, error: str) -> StrategyResult:
        return cls(outcome=StrategyOutcome.FATAL, error=error)


__all__ = ["StrategyResult", "TransferPlan"]
