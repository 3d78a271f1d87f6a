"""Byte source adapters."""

from streamverse_ingest.infrastructure.sources.http_source import (
    HttpByteSource,
    HttpSourceOpener,
    HttpSourceProbe,
)
from streamverse_ingest.infrastructure.sources.stream_source import AsyncIteratorSource

__all__ = ["AsyncIteratorSource", "HttpByteSource", "HttpSourceOpener", "HttpSourceProbe"]
