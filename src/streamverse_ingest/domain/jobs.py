"""Transfer job state models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum


class TransferJobStatus(StrEnum):
    """Transfer job lifecycle states."""

    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class StrategyOutcome(StrEnum):
    """Result classification for one strategy attempt."""

    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"
    SKIPPED = "skipped"


TERMINAL_JOB_STATUSES = frozenset({TransferJobStatus.COMPLETED, TransferJobStatus.FAILED})

_STATUS_RANK = {
    TransferJobStatus.PENDING: 0,
    TransferJobStatus.ACTIVE: 1,
    TransferJobStatus.COMPLETED: 2,
    TransferJobStatus.FAILED: 2,
}


def is_forward_transition(current: TransferJobStatus, target: TransferJobStatus) -> bool:
    """Return whether moving from `current` to `target` is allowed."""

    if current in TERMINAL_JOB_STATUSES:
        return False
    return _STATUS_RANK[target] >= _STATUS_RANK[current]


@dataclass(slots=True, frozen=True)
class StrategyAttempt:
    """A strategy that was skipped or failed before the job settled."""

    strategy: str
    outcome: StrategyOutcome
    error: str | None = None


@dataclass(slots=True, frozen=True)
class TransferJob:
    """Immutable snapshot of one transfer job."""

    id: str
    destination_name: str
    created_at: datetime
    updated_at: datetime
    status: TransferJobStatus = TransferJobStatus.PENDING
    source_url: str | None = None
    bytes_transferred: int = 0
    total_bytes: int = 0
    instantaneous_rate_mbps: float = 0.0
    progress_percent: int | None = None
    strategy: str | None = None
    attempts: tuple[StrategyAttempt, ...] = field(default_factory=tuple)
    error: str | None = None
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


@dataclass(slots=True, frozen=True)
class RemoteTransferStatus:
    """Job state reported by a remote transfer agent."""

    job_id: str
    status: TransferJobStatus
    bytes_transferred: int = 0
    total_bytes: int = 0
    destination_name: str | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES


def compute_progress_percent(
    bytes_transferred: int,
    total_bytes: int,
    *,
    completed: bool = False,
) -> int | None:
    """Return a whole-number percentage, or None when total size is unknown.

    Only a completed job reports 100.
    """

    if completed:
        return 100
    if total_bytes <= 0:
        return None
    percent = round(100 * bytes_transferred / total_bytes)
    return max(0, min(99, percent))


__all__ = [
    "RemoteTransferStatus",
    "StrategyAttempt",
    "StrategyOutcome",
    "TERMINAL_JOB_STATUSES",
    "TransferJob",
    "TransferJobStatus",
    "compute_progress_percent",
    "is_forward_transition",
]
