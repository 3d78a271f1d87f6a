"""Infrastructure layer public API."""

from streamverse_ingest.infrastructure.agents import RemoteTransferClient
from streamverse_ingest.infrastructure.events import (
    MqttJobEventPublisher,
    NoopJobEventPublisher,
)
from streamverse_ingest.infrastructure.repositories import InMemoryJobStore
from streamverse_ingest.infrastructure.sources import (
    AsyncIteratorSource,
    HttpSourceOpener,
    HttpSourceProbe,
)
from streamverse_ingest.infrastructure.storage import InMemoryBlockStore, S3BlockStore
from streamverse_ingest.infrastructure.strategies import (
    CredentialedAgentStrategy,
    LocalStreamingStrategy,
    ServerSideCopyStrategy,
)
from streamverse_ingest.infrastructure.transfers import ChunkedTransferEngine

__all__ = [
    "AsyncIteratorSource",
    "ChunkedTransferEngine",
    "CredentialedAgentStrategy",
    "HttpSourceOpener",
    "HttpSourceProbe",
    "InMemoryBlockStore",
    "InMemoryJobStore",
    "LocalStreamingStrategy",
    "MqttJobEventPublisher",
    "NoopJobEventPublisher",
    "RemoteTransferClient",
    "S3BlockStore",
    "ServerSideCopyStrategy",
]
