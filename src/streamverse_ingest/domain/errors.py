"""Domain exceptions for transfer operations."""


class TransferError(Exception):
    """Base class for transfer errors."""


class TransferJobNotFoundError(TransferError):
    """Raised when a transfer job or upload session cannot be found."""


class ObjectNotFoundError(TransferError):
    """Raised when a committed object does not exist."""


class TransferValidationError(TransferError):
    """Raised when request validation fails."""


class TransferConflictError(TransferError):
    """Raised when an operation conflicts with current job state."""


class TransferConfigurationError(TransferError):
    """Raised when the destination store is not configured or unusable."""


class SourceError(TransferError):
    """Raised when the source cannot be fetched or read."""


class StagingError(TransferError):
    """Raised when a block cannot be staged."""


class CommitError(TransferError):
    """Raised when the store rejects the final block list."""


class BlockOrderError(CommitError):
    """Raised when staged block ordinals are not contiguous."""


class RemoteAgentError(TransferError):
    """Raised when a remote transfer agent is unreachable or reports failure."""


__all__ = [
    "BlockOrderError",
    "CommitError",
    "ObjectNotFoundError",
    "RemoteAgentError",
    "SourceError",
    "StagingError",
    "TransferConfigurationError",
    "TransferConflictError",
    "TransferError",
    "TransferJobNotFoundError",
    "TransferValidationError",
]
