"""Browser upload routes: block sessions and single streaming uploads."""

from __future__ import annotations

from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Path, Query, Request

from streamverse_ingest.api.dependencies import get_upload_service
from streamverse_ingest.application.services import UploadSessionService
from streamverse_ingest.domain.api_models import (
    TransferJobResponse,
    UploadBlockResponse,
    UploadInitRequest,
    UploadSessionResponse,
)
from streamverse_ingest.domain.errors import (
    TransferConfigurationError,
    TransferConflictError,
    TransferJobNotFoundError,
    TransferValidationError,
)

router = APIRouter(prefix="/uploads", tags=["uploads"])


def _raise_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, TransferJobNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, TransferValidationError):
        raise HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, TransferConflictError):
        raise HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, TransferConfigurationError):
        raise HTTPException(status_code=503, detail=str(exc))
    raise HTTPException(status_code=500, detail="Unexpected upload error")


def _content_length(request: Request) -> int | None:
    value = request.headers.get("content-length")
    if value is None or not value.isdigit():
        return None
    return int(value)


async def _read_block_body(request: Request, limit: int) -> bytes:
    declared = _content_length(request)
    if declared is not None and declared > limit:
        raise TransferValidationError(f"Block body of {declared} bytes exceeds {limit} bytes.")
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > limit:
            raise TransferValidationError(f"Block body exceeds {limit} bytes.")
    return bytes(body)


@router.post("", response_model=UploadSessionResponse, status_code=201)
async def init_upload(
    body: UploadInitRequest,
    service: UploadSessionService = Depends(get_upload_service),
) -> UploadSessionResponse:
    """Open a block upload session."""

    try:
        job = await service.init(
            body.file_name,
            content_type=body.content_type,
            total_bytes=body.total_bytes,
        )
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return UploadSessionResponse(upload_id=job.id, file_name=job.destination_name)


@router.put("/stream", response_model=TransferJobResponse, status_code=200)
async def stream_upload(
    request: Request,
    file_name: str = Query(..., alias="fileName", min_length=1),
    service: UploadSessionService = Depends(get_upload_service),
) -> TransferJobResponse:
    """Stream the request body into one object and return the final job."""

    try:
        job = await service.stream_upload(
            file_name,
            request.stream(),
            content_type=request.headers.get("content-type"),
            total_bytes=_content_length(request),
        )
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return TransferJobResponse.from_job(job)


@router.put(
    "/{upload_id}/blocks/{block_id}",
    response_model=UploadBlockResponse,
    status_code=200,
)
async def stage_upload_block(
    request: Request,
    upload_id: str = Path(...),
    block_id: str = Path(...),
    service: UploadSessionService = Depends(get_upload_service),
) -> UploadBlockResponse:
    """Stage the raw request body as one block."""

    try:
        data = await _read_block_body(request, service.max_block_bytes)
        staged = await service.stage_block(upload_id, block_id, data)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return UploadBlockResponse(
        block_id=staged.block_id,
        uploaded_bytes=staged.job.bytes_transferred,
        progress_percent=staged.job.progress_percent,
        rate_mbps=round(staged.job.instantaneous_rate_mbps, 3),
    )


@router.post("/{upload_id}/complete", response_model=TransferJobResponse, status_code=200)
async def complete_upload(
    upload_id: str = Path(...),
    service: UploadSessionService = Depends(get_upload_service),
) -> TransferJobResponse:
    """Commit staged blocks in ordinal order."""

    try:
        job = await service.complete(upload_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return TransferJobResponse.from_job(job)


@router.delete("/{upload_id}", response_model=TransferJobResponse, status_code=200)
async def abort_upload(
    upload_id: str = Path(...),
    service: UploadSessionService = Depends(get_upload_service),
) -> TransferJobResponse:
    """Discard staged blocks and fail the session."""

    try:
        job = await service.abort(upload_id)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    return TransferJobResponse.from_job(job)


__all__ = ["router"]
