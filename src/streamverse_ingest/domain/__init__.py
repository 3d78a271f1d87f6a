"""Domain public API."""

from streamverse_ingest.domain.blocks import Block, decode_block_id, encode_block_id
from streamverse_ingest.domain.errors import (
    BlockOrderError,
    CommitError,
    ObjectNotFoundError,
    RemoteAgentError,
    SourceError,
    StagingError,
    TransferConfigurationError,
    TransferConflictError,
    TransferError,
    TransferJobNotFoundError,
    TransferValidationError,
)
from streamverse_ingest.domain.jobs import (
    RemoteTransferStatus,
    StrategyAttempt,
    StrategyOutcome,
    TransferJob,
    TransferJobStatus,
)
from streamverse_ingest.domain.objects import ObjectInfo
from streamverse_ingest.domain.ports import (
    BlockStore,
    ByteSource,
    JobEventPublisher,
    JobStore,
    ProgressSink,
    RemoteTransferAgent,
    SourceProber,
    TransferStrategy,
)
from streamverse_ingest.domain.sources import (
    ResolvedSource,
    SourceCredential,
    SourceKind,
    SourceProbe,
    TransferSource,
)
from streamverse_ingest.domain.transfer_plans import StrategyResult, TransferPlan

__all__ = [
    "Block",
    "BlockOrderError",
    "BlockStore",
    "ByteSource",
    "CommitError",
    "JobEventPublisher",
    "JobStore",
    "ObjectInfo",
    "ObjectNotFoundError",
    "ProgressSink",
    "RemoteAgentError",
    "RemoteTransferAgent",
    "RemoteTransferStatus",
    "ResolvedSource",
    "SourceCredential",
    "SourceError",
    "SourceKind",
    "SourceProbe",
    "SourceProber",
    "StagingError",
    "StrategyAttempt",
    "StrategyOutcome",
    "StrategyResult",
    "TransferConfigurationError",
    "TransferConflictError",
    "TransferError",
    "TransferJob",
    "TransferJobNotFoundError",
    "TransferJobStatus",
    "TransferPlan",
    "TransferSource",
    "TransferStrategy",
    "TransferValidationError",
    "decode_block_id",
    "encode_block_id",
]
