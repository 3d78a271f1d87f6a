"""Playback read path for committed objects."""

from __future__ import annotations

import re
from collections.abc import AsyncIterator
from typing import NoReturn

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Response
from fastapi.responses import StreamingResponse

from streamverse_ingest.api.dependencies import get_transfer_service
from streamverse_ingest.application.services import TransferService
from streamverse_ingest.domain.errors import ObjectNotFoundError
from streamverse_ingest.domain.objects import ObjectInfo
from streamverse_ingest.domain.source_resolver import resolve_content_type

_READ_CHUNK_BYTES = 4 * 1024 * 1024
_RANGE_PATTERN = re.compile(r"^bytes=(\d*)-(\d*)$")

router = APIRouter(prefix="/objects", tags=["objects"])


def _raise_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, ObjectNotFoundError):
        raise HTTPException(status_code=404, detail=str(exc))
    raise HTTPException(status_code=500, detail="Unexpected storage error")


def parse_range(header: str | None, size: int) -> tuple[int, int] | None:
    """Return the inclusive byte range a `Range` header selects.

    None means "whole object". Raises ValueError for unsatisfiable ranges.
    """

    if header is None:
        return None
    match = _RANGE_PATTERN.match(header.strip())
    if match is None:
        return None
    first, last = match.groups()
    if not first and not last:
        return None
    if not first:
        suffix = int(last)
        if suffix == 0 or size == 0:
            raise ValueError("Unsatisfiable suffix range.")
        return max(size - suffix, 0), size - 1
    start = int(first)
    end = size - 1 if not last else min(int(last), size - 1)
    if start >= size or start > end:
        raise ValueError("Unsatisfiable range.")
    return start, end


async def _object_info(service: TransferService, name: str) -> ObjectInfo:
    try:
        info = await service.object_info(name)
    except Exception as exc:  # noqa: BLE001
        _raise_http_exception(exc)
    if info is None:
        _raise_http_exception(ObjectNotFoundError(f"Object '{name}' not found."))
    return info


def _base_headers(info: ObjectInfo) -> dict[str, str]:
    return {
        "Accept-Ranges": "bytes",
        "Content-Type": resolve_content_type(info.content_type, info.name),
    }


@router.head("/{name}")
async def head_object(
    name: str = Path(...),
    service: TransferService = Depends(get_transfer_service),
) -> Response:
    """Object size and type without the body."""

    info = await _object_info(service, name)
    headers = _base_headers(info)
    headers["Content-Length"] = str(info.size)
    return Response(status_code=200, headers=headers)


@router.get("/{name}")
async def get_object(
    name: str = Path(...),
    range_header: str | None = Header(default=None, alias="Range"),
    service: TransferService = Depends(get_transfer_service),
) -> Response:
    """Stream an object, honouring a single byte range."""

    info = await _object_info(service, name)
    headers = _base_headers(info)
    try:
        selected = parse_range(range_header, info.size)
    except ValueError:
        raise HTTPException(
            status_code=416,
            detail="Requested range not satisfiable",
            headers={"Content-Range": f"bytes */{info.size}"},
        ) from None

    if selected is None:
        status_code = 200
        start, end = 0, info.size - 1
    else:
        status_code = 206
        start, end = selected
        headers["Content-Range"] = f"bytes {start}-{end}/{info.size}"

    if end < start:
        headers["Content-Length"] = "0"
        return Response(status_code=status_code, headers=headers)

    headers["Content-Length"] = str(end - start + 1)

    async def body() -> AsyncIterator[bytes]:
        position = start
        while position <= end:
            chunk_end = min(position + _READ_CHUNK_BYTES - 1, end)
            yield await service.read_object_range(name, position, chunk_end)
            position = chunk_end + 1

    return StreamingResponse(body(), status_code=status_code, headers=headers)


__all__ = ["parse_range", "router"]
