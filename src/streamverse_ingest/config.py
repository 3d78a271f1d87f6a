"""Application settings."""

from enum import StrEnum

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

MAX_STAGE_CONCURRENCY = 8


class StorageBackend(StrEnum):
    """Available block store adapters."""

    IN_MEMORY = "in_memory"
    S3 = "s3"


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "StreamVerse Ingest"
    api_prefix: str = ""
    instance_id: str = "ingest-local"
    host: str = "0.0.0.0"
    port: int = 8080
    storage_backend: StorageBackend = StorageBackend.IN_MEMORY
    s3_bucket: str | None = None
    aws_region: str = "us-east-1"
    s3_endpoint_url: str | None = None
    s3_public_read: bool = True
    s3_staging_prefix: str = ".staging"
    s3_max_pool_connections: int = 16
    block_size_mb: int = 8
    stage_concurrency: int = 4
    progress_update_interval_seconds: float = 1.0
    source_fetch_timeout_seconds: float = 600.0
    stall_timeout_seconds: float = 60.0
    credentialed_agent_url: str | None = None
    credentialed_agent_secret: str | None = None
    server_side_copy_url: str | None = None
    server_side_copy_secret: str | None = None
    server_side_copy_start_timeout_seconds: float = 30.0
    remote_agent_timeout_seconds: float = 10.0
    remote_poll_interval_seconds: float = 1.0
    job_retention_seconds: float = 300.0
    job_eviction_interval_seconds: float = 30.0
    upload_session_idle_seconds: float = 900.0
    events_mqtt_enabled: bool = False
    events_mqtt_host: str | None = None
    events_mqtt_port: int = 1883
    events_mqtt_username: str | None = None
    events_mqtt_password: str | None = None
    events_mqtt_topic_prefix: str = "streamverse/ingest"
    events_mqtt_qos: int = 0

    @model_validator(mode="after")
    def validate_runtime_settings(self) -> "Settings":
        """Ensure backend-specific and numeric settings are valid."""

        if self.storage_backend == StorageBackend.S3 and not self.s3_bucket:
            raise ValueError(
                "STREAMVERSE_S3_BUCKET is required when STREAMVERSE_STORAGE_BACKEND=s3."
            )
        if self.s3_max_pool_connections < 1:
            raise ValueError("STREAMVERSE_S3_MAX_POOL_CONNECTIONS must be >= 1.")
        if not 1 <= self.stage_concurrency <= MAX_STAGE_CONCURRENCY:
            raise ValueError(
                f"STREAMVERSE_STAGE_CONCURRENCY must be between 1 and {MAX_STAGE_CONCURRENCY}."
            )
        if self.stage_concurrency > self.s3_max_pool_connections:
            raise ValueError(
                "STREAMVERSE_STAGE_CONCURRENCY must be <= STREAMVERSE_S3_MAX_POOL_CONNECTIONS."
            )
        if self.block_size_mb < 1:
            raise ValueError("STREAMVERSE_BLOCK_SIZE_MB must be >= 1.")
        positive = {
            "STREAMVERSE_PROGRESS_UPDATE_INTERVAL_SECONDS": self.progress_update_interval_seconds,
            "STREAMVERSE_SOURCE_FETCH_TIMEOUT_SECONDS": self.source_fetch_timeout_seconds,
            "STREAMVERSE_STALL_TIMEOUT_SECONDS": self.stall_timeout_seconds,
            "STREAMVERSE_SERVER_SIDE_COPY_START_TIMEOUT_SECONDS": (
                self.server_side_copy_start_timeout_seconds
            ),
            "STREAMVERSE_REMOTE_AGENT_TIMEOUT_SECONDS": self.remote_agent_timeout_seconds,
            "STREAMVERSE_REMOTE_POLL_INTERVAL_SECONDS": self.remote_poll_interval_seconds,
            "STREAMVERSE_JOB_EVICTION_INTERVAL_SECONDS": self.job_eviction_interval_seconds,
            "STREAMVERSE_UPLOAD_SESSION_IDLE_SECONDS": self.upload_session_idle_seconds,
        }
        for env_name, value in positive.items():
            if value <= 0:
                raise ValueError(f"{env_name} must be > 0.")
        if self.job_retention_seconds < 0:
            raise ValueError("STREAMVERSE_JOB_RETENTION_SECONDS must be >= 0.")
        if self.events_mqtt_enabled and not self.events_mqtt_host:
            raise ValueError(
                "STREAMVERSE_EVENTS_MQTT_HOST is required when "
                "STREAMVERSE_EVENTS_MQTT_ENABLED=true."
            )
        if self.events_mqtt_port < 1:
            raise ValueError("STREAMVERSE_EVENTS_MQTT_PORT must be >= 1.")
        if self.events_mqtt_qos not in {0, 1, 2}:
            raise ValueError("STREAMVERSE_EVENTS_MQTT_QOS must be one of 0, 1, 2.")
        return self

    model_config = SettingsConfigDict(env_prefix="STREAMVERSE_", extra="ignore")


__all__ = ["Settings", "StorageBackend"]
