"""Byte source over an already-open async byte stream."""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator

from streamverse_ingest.domain.errors import SourceError, TransferError
from streamverse_ingest.domain.ports import ByteSource


class AsyncIteratorSource(ByteSource):
    """Wrap an async byte iterable, such as an uploaded request body."""

    def __init__(
        self,
        stream: AsyncIterable[bytes],
        *,
        total_bytes: int | None = None,
        content_type: str | None = None,
    ) -> None:
        self._stream = stream
        self._total_bytes = total_bytes if total_bytes and total_bytes > 0 else None
        self._content_type = content_type

    @property
    def total_bytes(self) -> int | None:
        return self._total_bytes

    @property
    def content_type(self) -> str | None:
        return self._content_type

    async def chunks(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._stream:
                yield chunk
        except TransferError:
            raise
        except Exception as exc:
            raise SourceError(f"Upload stream failed: {exc}") from exc


__all__ = ["AsyncIteratorSource"]
