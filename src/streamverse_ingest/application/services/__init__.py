"""Application services public API."""

from streamverse_ingest.application.services.transfer_service import (
    DestinationGuard,
    TransferService,
)
from streamverse_ingest.application.services.upload_service import (
    StagedBlock,
    UploadSessionService,
)

__all__ = ["DestinationGuard", "StagedBlock", "TransferService", "UploadSessionService"]
