"""MQTT job event publisher."""

from __future__ import annotations

import asyncio
import json
import time
from datetime import UTC, datetime
from typing import Any

from streamverse_ingest.domain.jobs import TransferJob
from streamverse_ingest.domain.ports import JobEventPublisher


class MqttJobEventPublisher(JobEventPublisher):
    """Publish transfer job snapshots to MQTT topics.

    Topic layout: `<topic_prefix>/<instance_id>/transfers/<job_id>/progress`.
    """

    def __init__(
        self,
        instance_id: str,
        broker_host: str,
        broker_port: int = 1883,
        topic_prefix: str = "streamverse/ingest",
        qos: int = 0,
        username: str | None = None,
        password: str | None = None,
        client: Any | None = None,
    ) -> None:
        if not broker_host.strip():
            raise ValueError("broker_host cannot be empty.")
        if qos not in {0, 1, 2}:
            raise ValueError("qos must be one of 0, 1, 2.")

        self._instance_id = instance_id
        self._topic_prefix = topic_prefix.strip().strip("/")
        self._qos = qos

        if client is None:
            client = self._build_client(instance_id)
            if username is not None:
                client.username_pw_set(username=username, password=password)
            self._connect_with_retry(
                client=client,
                broker_host=broker_host,
                broker_port=broker_port,
            )
            client.loop_start()
        self._client = client

    async def publish_progress(self, job: TransferJob) -> None:
        payload: dict[str, object] = {
            "eventType": "progress",
            "timestamp": datetime.now(tz=UTC).isoformat(),
            "instanceId": self._instance_id,
            "jobId": job.id,
            "status": job.status.value,
            "destinationName": job.destination_name,
            "strategy": job.strategy,
            "bytesTransferred": job.bytes_transferred,
            "totalBytes": job.total_bytes,
            "progressPercent": job.progress_percent,
            "rateMBps": job.instantaneous_rate_mbps,
            "error": job.error,
        }
        topic = self.topic_for(job.id)
        message = json.dumps(payload, separators=(",", ":"))
        await asyncio.to_thread(self._client.publish, topic, message, self._qos)

    def topic_for(self, job_id: str) -> str:
        return f"{self._topic_prefix}/{self._instance_id}/transfers/{job_id}/progress"

    def close(self) -> None:
        """Stop the network loop and disconnect."""

        self._client.loop_stop()
        self._client.disconnect()

    def _build_client(self, instance_id: str) -> Any:
        try:
            import paho.mqtt.client as mqtt  # type: ignore[import-untyped]
        except ModuleNotFoundError as exc:
            raise RuntimeError(
                "paho-mqtt is required for MQTT job events. "
                "Install project dependencies first."
            ) from exc

        return mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=f"streamverse-ingest-{instance_id}",
        )

    def _connect_with_retry(
        self,
        client: Any,
        broker_host: str,
        broker_port: int,
        max_attempts: int = 20,
    ) -> None:
        """Connect to MQTT broker with bounded retry/backoff."""

        delay_seconds = 0.5
        last_error: Exception | None = None
        for attempt in range(1, max_attempts + 1):
            try:
                client.connect(host=broker_host, port=broker_port, keepalive=60)
                return
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                if attempt == max_attempts:
                    break
                time.sleep(delay_seconds)
                delay_seconds = min(3.0, delay_seconds * 1.5)

        raise RuntimeError(
            f"Failed to connect to MQTT broker {broker_host}:{broker_port} "
            f"after {max_attempts} attempts."
        ) from last_error


__all__ = ["MqttJobEventPublisher"]
