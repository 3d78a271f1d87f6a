"""Transfer strategies tried by the fallback orchestrator."""

from streamverse_ingest.infrastructure.strategies.local_streaming_strategy import (
    LocalStreamingStrategy,
)
from streamverse_ingest.infrastructure.strategies.remote_agent_strategies import (
    CredentialedAgentStrategy,
    ServerSideCopyStrategy,
)

__all__ = ["CredentialedAgentStrategy", "LocalStreamingStrategy", "ServerSideCopyStrategy"]
