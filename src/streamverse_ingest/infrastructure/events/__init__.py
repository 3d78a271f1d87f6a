"""Job event publisher implementations."""

from streamverse_ingest.infrastructure.events.mqtt_job_event_publisher import (
    MqttJobEventPublisher,
)
from streamverse_ingest.infrastructure.events.noop_job_event_publisher import (
    NoopJobEventPublisher,
)

__all__ = ["MqttJobEventPublisher", "NoopJobEventPublisher"]
