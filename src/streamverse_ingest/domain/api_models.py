"""Pydantic models for the transfer HTTP API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from streamverse_ingest.domain.jobs import (
    StrategyOutcome,
    TransferJob,
    TransferJobStatus,
)
from streamverse_ingest.domain.sources import SourceCredential


class ApiModel(BaseModel):
    """Base model for transfer API payloads."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class CredentialPayload(ApiModel):
    """Caller-held credential material for gated sources."""

    cookies: str | None = None
    bearer_token: str | None = Field(default=None, alias="bearerToken")
    headers: dict[str, str] = Field(default_factory=dict)

    def to_domain(self) -> SourceCredential:
        return SourceCredential(
            cookies=self.cookies or None,
            bearer_token=self.bearer_token or None,
            headers=dict(self.headers),
        )


class StartTransferRequest(ApiModel):
    """Body of `POST /transfers`."""

    source_url: str = Field(alias="sourceUrl", min_length=1)
    destination_name: str | None = Field(default=None, alias="destinationName")
    credential: CredentialPayload | None = None


class TransferStartedResponse(ApiModel):
    """Body returned when a transfer was accepted."""

    job_id: str = Field(alias="jobId")
    status: TransferJobStatus
    destination_name: str = Field(alias="destinationName")


class StrategyAttemptResponse(ApiModel):
    """One skipped or failed strategy."""

    strategy: str
    outcome: StrategyOutcome
    error: str | None = None


class TransferJobResponse(ApiModel):
    """Poll snapshot of one job."""

    job_id: str = Field(alias="jobId")
    status: TransferJobStatus
    destination_name: str = Field(alias="destinationName")
    source_url: str | None = Field(default=None, alias="sourceUrl")
    bytes_transferred: int = Field(default=0, alias="bytesTransferred")
    total_bytes: int = Field(default=0, alias="totalBytes")
    progress_percent: int | None = Field(default=None, alias="progressPercent")
    instantaneous_rate_mbps: float = Field(default=0.0, alias="instantaneousRateMBps")
    strategy: str | None = None
    attempts: list[StrategyAttemptResponse] = Field(default_factory=list)
    error: str | None = None
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    finished_at: datetime | None = Field(default=None, alias="finishedAt")

    @classmethod
    def from_job(cls, job: TransferJob) -> TransferJobResponse:
        return cls(
            job_id=job.id,
            status=job.status,
            destination_name=job.destination_name,
            source_url=job.source_url,
            bytes_transferred=job.bytes_transferred,
            total_bytes=job.total_bytes,
            progress_percent=job.progress_percent,
            instantaneous_rate_mbps=round(job.instantaneous_rate_mbps, 3),
            strategy=job.strategy,
            attempts=[
                StrategyAttemptResponse(
                    strategy=attempt.strategy,
                    outcome=attempt.outcome,
                    error=attempt.error,
                )
                for attempt in job.attempts
            ],
            error=job.error,
            created_at=job.created_at,
            updated_at=job.updated_at,
            finished_at=job.finished_at,
        )


class TransferListResponse(ApiModel):
    """Collection wrapper for `GET /transfers`."""

    transfers: list[TransferJobResponse]


class ProgressEvent(ApiModel):
    """One server-push progress frame."""

    status: TransferJobStatus
    message: str
    progress: int | None = None
    bytes_transferred: int = Field(default=0, alias="bytesTransferred")
    total_bytes: int = Field(default=0, alias="totalBytes")
    rate_mbps: float = Field(default=0.0, alias="rateMBps")
    error: str | None = None
    success: bool | None = None
    file_name: str | None = Field(default=None, alias="fileName")

    @property
    def is_final(self) -> bool:
        return self.success is True or self.error is not None


class UploadInitRequest(ApiModel):
    """Body of `POST /uploads`."""

    file_name: str = Field(alias="fileName", min_length=1)
    content_type: str | None = Field(default=None, alias="contentType")
    total_bytes: int = Field(default=0, alias="totalBytes", ge=0)


class UploadSessionResponse(ApiModel):
    """Upload session handle."""

    upload_id: str = Field(alias="uploadId")
    file_name: str = Field(alias="fileName")


class UploadBlockResponse(ApiModel):
    """Acknowledgement of one staged upload block."""

    block_id: str = Field(alias="blockId")
    uploaded_bytes: int = Field(alias="uploadedBytes")
    progress_percent: int | None = Field(default=None, alias="progressPercent")
    rate_mbps: float = Field(alias="rateMBps")


__all__ = [
    "ApiModel",
    "CredentialPayload",
    "ProgressEvent",
    "StartTransferRequest",
    "StrategyAttemptResponse",
    "TransferJobResponse",
    "TransferListResponse",
    "TransferStartedResponse",
    "UploadBlockResponse",
    "UploadInitRequest",
    "UploadSessionResponse",
]
