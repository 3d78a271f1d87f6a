"""HTTP byte sources backed by httpx streaming responses."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager

import httpx

from streamverse_ingest.domain.errors import SourceError
from streamverse_ingest.domain.ports import ByteSource, SourceProber
from streamverse_ingest.domain.source_resolver import parse_content_disposition_filename
from streamverse_ingest.domain.sources import SourceProbe

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
_DEFAULT_FETCH_TIMEOUT_SECONDS = 600.0
_DEFAULT_READ_TIMEOUT_SECONDS = 60.0
_DEFAULT_PROBE_TIMEOUT_SECONDS = 15.0
_DEFAULT_CHUNK_SIZE = 1024 * 1024


def _parse_length(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        parsed = int(value)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


class HttpByteSource(ByteSource):
    """Byte source reading an open streaming response."""

    def __init__(self, response: httpx.Response, chunk_size: int = _DEFAULT_CHUNK_SIZE) -> None:
        self._response = response
        self._chunk_size = max(1, chunk_size)
        encoded = response.headers.get("content-encoding", "identity").lower() != "identity"
        # A compressed body's Content-Length does not match the decoded bytes.
        length = _parse_length(response.headers.get("content-length"))
        self._total_bytes = None if encoded else length

    @property
    def total_bytes(self) -> int | None:
        return self._total_bytes

    @property
    def content_type(self) -> str | None:
        return self._response.headers.get("content-type")

    @property
    def final_url(self) -> str:
        return str(self._response.url)

    async def chunks(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes(self._chunk_size):
                yield chunk
        except httpx.TimeoutException as exc:
            raise SourceError("Source stalled: no data received within the read timeout.") from exc
        except httpx.HTTPError as exc:
            raise SourceError(f"Source read failed: {exc}") from exc


class HttpSourceOpener:
    """Open streaming GET requests against transfer sources."""

    def __init__(
        self,
        *,
        fetch_timeout_seconds: float = _DEFAULT_FETCH_TIMEOUT_SECONDS,
        read_timeout_seconds: float = _DEFAULT_READ_TIMEOUT_SECONDS,
        chunk_size: int = _DEFAULT_CHUNK_SIZE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._fetch_timeout_seconds = max(fetch_timeout_seconds, 0.01)
        self._read_timeout_seconds = max(read_timeout_seconds, 0.01)
        self._chunk_size = chunk_size
        self._transport = transport

    @asynccontextmanager
    async def open(
        self,
        url: str,
        headers: Mapping[str, str] | None = None,
    ) -> AsyncIterator[HttpByteSource]:
        """Yield a byte source for `url`; the response is closed on exit.

        Obtaining the response is bounded by the fetch timeout; after that,
        each read is bounded by the read (inactivity) timeout.
        """

        request_headers = {
            "User-Agent": DEFAULT_USER_AGENT,
            "Accept": "*/*",
            "Accept-Encoding": "identity",
            **(headers or {}),
        }
        timeout = httpx.Timeout(
            self._fetch_timeout_seconds,
            read=self._read_timeout_seconds,
        )
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            request = client.build_request("GET", url, headers=request_headers)
            try:
                async with asyncio.timeout(self._fetch_timeout_seconds):
                    response = await client.send(request, stream=True)
            except TimeoutError as exc:
                raise SourceError("Request timed out.") from exc
            except httpx.TimeoutException as exc:
                raise SourceError("Request timed out.") from exc
            except httpx.HTTPError as exc:
                raise SourceError(f"Failed to connect: {exc}") from exc

            try:
                if not response.is_success:
                    raise SourceError(
                        f"Failed to fetch: {response.status_code} {response.reason_phrase}".strip()
                    )
                yield HttpByteSource(response, chunk_size=self._chunk_size)
            finally:
                await response.aclose()


class HttpSourceProbe(SourceProber):
    """Best-effort preflight HEAD request; never raises for source problems."""

    def __init__(
        self,
        *,
        timeout_seconds: float = _DEFAULT_PROBE_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout_seconds = max(timeout_seconds, 0.01)
        self._transport = transport

    async def probe(
        self,
        url: str,
        headers: Mapping[str, str] | None = None,
    ) -> SourceProbe:
        """Return reachability, final URL, length, type, and filename hints."""

        request_headers = {"User-Agent": DEFAULT_USER_AGENT, **(headers or {})}
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_seconds,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.head(url, headers=request_headers)
        except httpx.HTTPError:
            return SourceProbe(reachable=False)

        if not response.is_success:
            return SourceProbe(reachable=False, final_url=str(response.url))

        return SourceProbe(
            reachable=True,
            final_url=str(response.url),
            total_bytes=_parse_length(response.headers.get("content-length")),
            content_type=response.headers.get("content-type"),
            content_disposition_filename=parse_content_disposition_filename(
                response.headers.get("content-disposition")
            ),
        )


__all__ = ["DEFAULT_USER_AGENT", "HttpByteSource", "HttpSourceOpener", "HttpSourceProbe"]
