"""Remote transfer agent clients."""

from streamverse_ingest.infrastructure.agents.client import SECRET_HEADER, RemoteTransferClient

__all__ = ["SECRET_HEADER", "RemoteTransferClient"]
