"""Transfer engine implementations."""

from streamverse_ingest.infrastructure.transfers.chunked_transfer_engine import (
    ChunkedTransferEngine,
    ChunkedTransferResult,
    clamp_block_size_mb,
)

__all__ = ["ChunkedTransferEngine", "ChunkedTransferResult", "clamp_block_size_mb"]
