"""Kafka publication of per-chunk step count events."""

import json
from typing import Any

import structlog
from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from . import metrics
from .config import Settings, settings as default_settings
from .models import ChunkResult, StepCountEvent

logger = structlog.get_logger(__name__)


class StepEventPublisher:
    """Async Kafka producer for step count events."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or default_settings
        self._producer: AIOKafkaProducer | None = None
        self._is_connected = False

    async def start(self) -> None:
        """Start the Kafka producer connection."""
        try:
            self._producer = AIOKafkaProducer(
                bootstrap_servers=self.settings.kafka_bootstrap_servers,
                client_id=self.settings.kafka_client_id,
                value_serializer=self._serialize_message,
                key_serializer=self._serialize_key,
                request_timeout_ms=30000,
            )

            await self._producer.start()
            self._is_connected = True

            logger.info(
                "Kafka producer started",
                bootstrap_servers=self.settings.kafka_bootstrap_servers,
                client_id=self.settings.kafka_client_id,
                topic=self.settings.kafka_output_topic,
            )

        except Exception as e:
            logger.exception("Failed to start Kafka producer", error=str(e))
            self._is_connected = False
            raise

    async def stop(self) -> None:
        """Stop the Kafka producer connection."""
        if self._producer:
            try:
                await self._producer.stop()
                logger.info("Kafka producer stopped")
            except Exception as e:
                logger.exception("Error stopping Kafka producer", error=str(e))
            finally:
                self._is_connected = False
                self._producer = None

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    async def publish(self, device_id: str, chunk_key: str, result: ChunkResult) -> StepCountEvent:
        """Send the step count event for a processed chunk, keyed by device id."""
        if not self._is_connected or not self._producer:
            raise RuntimeError("Kafka producer not connected")

        event = StepCountEvent(
            device_id=device_id,
            session_id=result.session_id_used,
            chunk_key=chunk_key,
            step_count=result.steps_in_chunk,
            cumulative_steps=result.cumulative_steps,
            running_steps=result.running_steps,
            shake_removed=result.shake_removed,
            samples_processed=result.samples_processed,
            last_sample_number=result.last_sample_number,
            temp_avg_c=result.temp_avg_c,
        )
        topic = self.settings.kafka_output_topic

        try:
            await self._producer.send_and_wait(topic, value=event, key=device_id)
        except KafkaError as e:
            metrics.kafka_messages_total.labels(topic=topic, status="error").inc()
            logger.error(
                "Failed to send step event",
                topic=topic,
                device_id=device_id,
                message_id=event.message_id,
                error=str(e),
            )
            raise

        metrics.kafka_messages_total.labels(topic=topic, status="success").inc()
        logger.debug(
            "Step event sent",
            topic=topic,
            device_id=device_id,
            message_id=event.message_id,
            step_count=event.step_count,
        )
        return event

    @staticmethod
    def _serialize_message(message: Any) -> bytes:
        if hasattr(message, "model_dump"):
            return json.dumps(message.model_dump(mode="json")).encode("utf-8")
        return json.dumps(message, default=str).encode("utf-8")

    @staticmethod
    def _serialize_key(key: str | None) -> bytes | None:
        return key.encode("utf-8") if key else None
