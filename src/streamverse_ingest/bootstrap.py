"""Application bootstrap/wiring."""

import logging
from dataclasses import dataclass

import httpx

from streamverse_ingest.application.job_registry import JobRegistry
from streamverse_ingest.application.orchestrator import FallbackOrchestrator
from streamverse_ingest.application.services import (
    DestinationGuard,
    TransferService,
    UploadSessionService,
)
from streamverse_ingest.config import Settings, StorageBackend
from streamverse_ingest.domain.ports import BlockStore, JobEventPublisher, TransferStrategy
from streamverse_ingest.infrastructure.agents import RemoteTransferClient
from streamverse_ingest.infrastructure.events import (
    MqttJobEventPublisher,
    NoopJobEventPublisher,
)
from streamverse_ingest.infrastructure.repositories import InMemoryJobStore
from streamverse_ingest.infrastructure.sources import HttpSourceOpener, HttpSourceProbe
from streamverse_ingest.infrastructure.storage import InMemoryBlockStore, S3BlockStore
from streamverse_ingest.infrastructure.strategies import (
    CredentialedAgentStrategy,
    LocalStreamingStrategy,
    ServerSideCopyStrategy,
)
from streamverse_ingest.infrastructure.transfers import (
    ChunkedTransferEngine,
    clamp_block_size_mb,
)

_MB = 1024 * 1024

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ServiceGraph:
    """Services sharing one registry and one block store."""

    transfers: TransferService
    uploads: UploadSessionService


def _build_block_store(settings: Settings) -> BlockStore:
    if settings.storage_backend == StorageBackend.S3:
        if settings.s3_bucket is None:
            raise ValueError(
                "STREAMVERSE_S3_BUCKET is required when STREAMVERSE_STORAGE_BACKEND=s3."
            )
        return S3BlockStore(
            settings.s3_bucket,
            region=settings.aws_region,
            endpoint_url=settings.s3_endpoint_url,
            staging_prefix=settings.s3_staging_prefix,
            public_read=settings.s3_public_read,
            max_pool_connections=settings.s3_max_pool_connections,
            commit_concurrency=settings.stage_concurrency,
        )
    logger.warning(
        "STREAMVERSE_STORAGE_BACKEND=in_memory: imported objects live in process memory only."
    )
    return InMemoryBlockStore()


def _build_job_event_publisher(settings: Settings) -> JobEventPublisher:
    if settings.events_mqtt_enabled:
        if settings.events_mqtt_host is None:
            raise ValueError(
                "STREAMVERSE_EVENTS_MQTT_HOST is required when "
                "STREAMVERSE_EVENTS_MQTT_ENABLED=true."
            )
        return MqttJobEventPublisher(
            instance_id=settings.instance_id,
            broker_host=settings.events_mqtt_host,
            broker_port=settings.events_mqtt_port,
            topic_prefix=settings.events_mqtt_topic_prefix,
            qos=settings.events_mqtt_qos,
            username=settings.events_mqtt_username,
            password=settings.events_mqtt_password,
        )
    return NoopJobEventPublisher()


def _build_strategies(
    settings: Settings,
    engine: ChunkedTransferEngine,
    http_transport: httpx.AsyncBaseTransport | None,
) -> list[TransferStrategy]:
    """Strategy chain in fallback order; unconfigured remote agents are left out."""

    strategies: list[TransferStrategy] = []
    if settings.credentialed_agent_url:
        strategies.append(
            CredentialedAgentStrategy(
                RemoteTransferClient(
                    settings.credentialed_agent_url,
                    secret=settings.credentialed_agent_secret,
                    timeout_seconds=settings.remote_agent_timeout_seconds,
                    transport=http_transport,
                ),
                poll_interval_seconds=settings.remote_poll_interval_seconds,
                stall_timeout_seconds=settings.stall_timeout_seconds,
            )
        )
    else:
        logger.info("No credentialed agent configured; gated sources stream locally.")

    if settings.server_side_copy_url:
        strategies.append(
            ServerSideCopyStrategy(
                RemoteTransferClient(
                    settings.server_side_copy_url,
                    secret=settings.server_side_copy_secret,
                    timeout_seconds=settings.remote_agent_timeout_seconds,
                    transport=http_transport,
                ),
                start_timeout_seconds=settings.server_side_copy_start_timeout_seconds,
                poll_interval_seconds=settings.remote_poll_interval_seconds,
                stall_timeout_seconds=settings.stall_timeout_seconds,
            )
        )

    strategies.append(
        LocalStreamingStrategy(
            engine,
            HttpSourceOpener(
                fetch_timeout_seconds=settings.source_fetch_timeout_seconds,
                read_timeout_seconds=settings.stall_timeout_seconds,
                transport=http_transport,
            ),
        )
    )
    return strategies


def build_services(
    settings: Settings,
    *,
    block_store: BlockStore | None = None,
    http_transport: httpx.AsyncBaseTransport | None = None,
) -> ServiceGraph:
    """Compose service graph."""

    store = block_store if block_store is not None else _build_block_store(settings)
    registry = JobRegistry(
        InMemoryJobStore(),
        retention_seconds=settings.job_retention_seconds,
        event_publisher=_build_job_event_publisher(settings),
    )
    engine = ChunkedTransferEngine(
        store,
        block_size_bytes=clamp_block_size_mb(settings.block_size_mb) * _MB,
        stage_concurrency=settings.stage_concurrency,
    )
    destination = DestinationGuard(store)
    orchestrator = FallbackOrchestrator(
        _build_strategies(settings, engine, http_transport),
        registry,
        progress_interval_seconds=settings.progress_update_interval_seconds,
    )
    logger.info("Transfer strategies: %s", ", ".join(orchestrator.strategy_names))

    uploads = UploadSessionService(
        registry,
        store,
        engine,
        destination=destination,
        progress_interval_seconds=settings.progress_update_interval_seconds,
        session_idle_seconds=settings.upload_session_idle_seconds,
    )
    transfers = TransferService(
        registry,
        store,
        orchestrator,
        HttpSourceProbe(transport=http_transport),
        destination=destination,
        stall_timeout_seconds=settings.stall_timeout_seconds,
        eviction_interval_seconds=settings.job_eviction_interval_seconds,
        idle_session_sweeper=uploads.expire_idle_sessions,
    )
    return ServiceGraph(transfers=transfers, uploads=uploads)


__all__ = ["ServiceGraph", "build_services"]
