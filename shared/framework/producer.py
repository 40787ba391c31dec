"""
Kafka producer abstraction for async microservices.

Used for dead-letter publishing, where the caller needs to know the
message was delivered before it commits the source offset.
"""

import asyncio
from typing import Optional, Dict, Any
from dataclasses import dataclass
import json

from confluent_kafka import Producer, KafkaError, KafkaException
import structlog

from .config import KafkaConfig


logger = structlog.get_logger()


@dataclass
class ProducerConfig:
    """Producer configuration."""
    topic: str
    flush_timeout: float = 10.0
    retry_backoff_ms: int = 100
    max_retries: int = 3


class KafkaProducer:
    """
    High-level Kafka producer with delivery confirmation.

    Features:
    - Synchronous delivery confirmation per message
    - Metrics collection
    - Graceful shutdown
    """

    def __init__(self, config: ProducerConfig, kafka_config: KafkaConfig):
        self.config = config
        self.kafka_config = kafka_config

        self.logger = structlog.get_logger("kafka-producer")
        self.producer: Optional[Producer] = None
        self.running = False

        # Metrics
        self.messages_sent = 0
        self.messages_failed = 0
        self.last_message_time = None

    def _create_producer(self) -> Producer:
        """Create Kafka producer instance."""
        producer_config = {
            'bootstrap.servers': self.kafka_config.bootstrap_servers,
            'retries': self.config.max_retries,
            'retry.backoff.ms': self.config.retry_backoff_ms,
            'enable.idempotence': True,
            'compression.type': 'snappy',
        }

        return Producer(producer_config)

    async def start(self) -> None:
        """Start the producer."""
        if self.running:
            return

        self.logger.info("Starting Kafka producer", topic=self.config.topic)

        self.producer = self._create_producer()
        self.running = True

    async def stop(self) -> None:
        """Stop the producer."""
        if not self.running:
            return

        self.logger.info("Stopping Kafka producer")
        self.running = False

        if self.producer:
            # Flush remaining messages
            await asyncio.to_thread(self.producer.flush, self.config.flush_timeout)

        self.logger.info("Kafka producer stopped")

    async def send_message(
        self,
        payload: Any,
        key: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> None:
        """Send a message and wait until the broker acknowledges it."""
        if not self.producer:
            raise RuntimeError("Producer not started")

        errors = []

        def on_delivery(err: Optional[KafkaError], msg: Any) -> None:
            self._delivery_callback(err, msg)
            if err:
                errors.append(err)

        value = payload if isinstance(payload, str) else json.dumps(payload, default=str)

        try:
            self.producer.produce(
                topic=self.config.topic,
                value=value.encode('utf-8'),
                key=key.encode('utf-8') if key else None,
                headers=headers or {},
                callback=on_delivery
            )
        except (BufferError, KafkaException) as e:
            self.logger.error("Message send error", error=str(e), topic=self.config.topic)
            self.messages_failed += 1
            raise

        remaining = await asyncio.to_thread(self.producer.flush, self.config.flush_timeout)
        if remaining:
            self.messages_failed += 1
            raise KafkaException(KafkaError(KafkaError._MSG_TIMED_OUT))
        if errors:
            raise KafkaException(errors[0])

        self.messages_sent += 1
        self.last_message_time = asyncio.get_running_loop().time()

    def _delivery_callback(self, err: Optional[KafkaError], msg: Any) -> None:
        """Delivery callback for Kafka messages."""
        if err:
            self.logger.error(
                "Message delivery failed",
                error=str(err),
                topic=msg.topic() if msg else None,
                partition=msg.partition() if msg else None
            )
            self.messages_failed += 1
        else:
            self.logger.debug(
                "Message delivered",
                topic=msg.topic(),
                partition=msg.partition(),
                offset=msg.offset()
            )

    def get_metrics(self) -> Dict[str, Any]:
        """Get producer metrics."""
        return {
            "messages_sent": self.messages_sent,
            "messages_failed": self.messages_failed,
            "last_message_time": self.last_message_time,
            "running": self.running,
        }
