"""URL import routes: start, poll, stream progress, cancel, delete."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Path, Response
from fastapi.responses import StreamingResponse

from streamverse_ingest.api.dependencies import get_transfer_service
from streamverse_ingest.application.services import TransferService
from streamverse_ingest.domain.api_models import (
    StartTransferRequest,
    TransferJobResponse,
    TransferListResponse,
    TransferStartedResponse,
)
from streamverse_ingest.domain.errors import (
    TransferConfigurationError,
    TransferConflictError,
    TransferJobNotFoundError,
    TransferValidationError,
)

router = APIRouter(prefix="/transfers", tags=["transfers"])


def _raise_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, TransferJobNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, TransferValidationError):
        raise HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, TransferConflictError):
        raise HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, TransferConfigurationError):
        raise HTTPException(status_code=503, detail=str(exc))
    raise HTTPException(status_code=500, detail="Unexpected transfer error")


@router.post("", response_model=TransferStartedResponse, status_code=202)
async def start_transfer(
    body: StartTransferRequest,
    service: TransferService = Depends(get_transfer_service),
) -> TransferStartedResponse:
    """Accept a URL import; progress is observed by polling or streaming."""

    try:
        job = await service.start(
            body.source_url,
            destination_name=body.destination_name,
            credential=None if body.credential is None else body.credential.to_domain(),
        )
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return TransferStartedResponse(
        job_id=job.id,
        status=job.status,
        destination_name=job.destination_name,
    )


@router.get("", response_model=TransferListResponse, status_code=200)
async def list_transfers(
    service: TransferService = Depends(get_transfer_service),
) -> TransferListResponse:
    """List retained jobs, newest first."""

    jobs = await service.list_jobs()
    return TransferListResponse(transfers=[TransferJobResponse.from_job(job) for job in jobs])


@router.get("/{job_id}", response_model=TransferJobResponse, status_code=200)
async def get_transfer(
    job_id: str = Path(...),
    service: TransferService = Depends(get_transfer_service),
) -> TransferJobResponse:
    """Poll one job snapshot."""

    try:
        job = await service.get_job(job_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return TransferJobResponse.from_job(job)


@router.get("/{job_id}/events")
async def stream_transfer_events(
    job_id: str = Path(...),
    service: TransferService = Depends(get_transfer_service),
) -> StreamingResponse:
    """Server-sent progress frames until the job ends or stalls."""

    try:
        await service.get_job(job_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)

    async def frames() -> AsyncIterator[str]:
        async for event in service.watch(job_id):
            yield f"data: {event.model_dump_json(by_alias=True, exclude_none=True)}\n\n"

    return StreamingResponse(
        frames(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/{job_id}/cancel", response_model=TransferJobResponse, status_code=200)
async def cancel_transfer(
    job_id: str = Path(...),
    service: TransferService = Depends(get_transfer_service),
) -> TransferJobResponse:
    """Stop a running job; it ends `failed` with "Transfer cancelled"."""

    try:
        job = await service.cancel_job(job_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return TransferJobResponse.from_job(job)


@router.delete("/{job_id}", status_code=204)
async def delete_transfer(
    job_id: str = Path(...),
    service: TransferService = Depends(get_transfer_service),
) -> Response:
    """Forget a job, stopping it first if it is still running."""

    try:
        await service.delete_job(job_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return Response(status_code=204)


__all__ = ["router"]
