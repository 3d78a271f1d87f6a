"""Block store adapters."""

from streamverse_ingest.infrastructure.storage.in_memory_block_store import InMemoryBlockStore
from streamverse_ingest.infrastructure.storage.s3_block_store import S3BlockStore

__all__ = ["InMemoryBlockStore", "S3BlockStore"]
