"""
Kafka consumer abstraction for async microservices.

Offsets are committed manually, one message at a time, only after the
handler has finished with it. A failed message is sought back so that the
next poll delivers it again.
"""

import asyncio
from typing import Optional, Callable, Any, Awaitable, Dict, List
from dataclasses import dataclass
import json

from confluent_kafka import Consumer, KafkaError, Message, TopicPartition
import structlog

from .config import KafkaConfig


logger = structlog.get_logger()


MessageHandler = Callable[[Dict[str, Any]], Awaitable[None]]


@dataclass
class ConsumerConfig:
    """Consumer configuration."""
    topics: List[str]
    group_id: str
    auto_offset_reset: str = "earliest"
    max_poll_records: int = 100
    session_timeout_ms: int = 30000
    heartbeat_interval_ms: int = 3000
    poll_timeout: float = 1.0
    retry_backoff: float = 1.0


class KafkaConsumer:
    """
    High-level Kafka consumer with async processing.

    Features:
    - Commit after successful handling
    - Redelivery of failed messages by seeking back
    - Graceful shutdown
    """

    def __init__(
        self,
        config: ConsumerConfig,
        kafka_config: KafkaConfig,
        message_handler: MessageHandler,
        error_handler: Optional[Callable[[Exception], Awaitable[None]]] = None
    ):
        self.config = config
        self.kafka_config = kafka_config
        self.message_handler = message_handler
        self.error_handler = error_handler or self._default_error_handler

        self.logger = structlog.get_logger("kafka-consumer")
        self.consumer: Optional[Consumer] = None
        self.running = False
        self.task: Optional[asyncio.Task] = None

        # Metrics
        self.messages_processed = 0
        self.messages_failed = 0
        self.last_message_time = None

    def _create_consumer(self) -> Consumer:
        """Create Kafka consumer instance."""
        consumer_config = {
            'bootstrap.servers': self.kafka_config.bootstrap_servers,
            'group.id': self.config.group_id,
            'auto.offset.reset': self.config.auto_offset_reset,
            'enable.auto.commit': False,
            'session.timeout.ms': self.config.session_timeout_ms,
            'heartbeat.interval.ms': self.config.heartbeat_interval_ms,
        }

        return Consumer(consumer_config)

    async def start(self) -> None:
        """Start the consumer."""
        if self.running:
            return

        self.logger.info(
            "Starting Kafka consumer",
            topics=self.config.topics,
            group_id=self.config.group_id
        )

        self.consumer = self._create_consumer()
        self.consumer.subscribe(self.config.topics)

        self.running = True
        self.task = asyncio.create_task(self._consume_loop())

    async def stop(self) -> None:
        """Stop the consumer."""
        if not self.running:
            return

        self.logger.info("Stopping Kafka consumer")

        self.running = False

        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass

        if self.consumer:
            self.consumer.close()

        self.logger.info("Kafka consumer stopped")

    async def _consume_loop(self) -> None:
        """Main consumption loop."""
        while self.running:
            try:
                messages = await asyncio.to_thread(
                    self.consumer.consume,
                    num_messages=self.config.max_poll_records,
                    timeout=self.config.poll_timeout
                )

                if not messages:
                    continue

                await self.process_messages(messages)

            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error("Consumer loop error", error=str(e), exc_info=True)
                await self.error_handler(e)
                await asyncio.sleep(self.config.retry_backoff)

    async def process_messages(self, messages: List[Message]) -> None:
        """Handle a polled batch in order, stopping a partition at its first failure."""
        blocked = set()

        for message in messages:
            if message is None:
                continue

            if message.error():
                if message.error().code() == KafkaError._PARTITION_EOF:
                    continue
                self.logger.error(
                    "Message error",
                    error=str(message.error()),
                    topic=message.topic(),
                    partition=message.partition()
                )
                continue

            partition_key = (message.topic(), message.partition())
            if partition_key in blocked:
                # Already rewound; later messages are redelivered after the failed one
                continue

            try:
                await self.message_handler(self._parse_message(message))
            except Exception as e:
                self.messages_failed += 1
                self.logger.error(
                    "Message handler error",
                    error=str(e),
                    topic=message.topic(),
                    partition=message.partition(),
                    offset=message.offset()
                )
                self._rewind(message)
                blocked.add(partition_key)
                await self.error_handler(e)
                continue

            self.consumer.commit(message=message, asynchronous=False)
            self.messages_processed += 1
            self.last_message_time = asyncio.get_running_loop().time()

        if blocked:
            await asyncio.sleep(self.config.retry_backoff)

    def _rewind(self, message: Message) -> None:
        """Seek the message's partition back so the message is polled again."""
        self.consumer.seek(TopicPartition(message.topic(), message.partition(), message.offset()))

    def _parse_message(self, message: Message) -> Dict[str, Any]:
        """Parse Kafka message to dictionary."""
        raw = message.value() or b""
        try:
            payload = json.loads(raw.decode('utf-8'))
        except (json.JSONDecodeError, UnicodeDecodeError):
            # Left as text; the handler decides what to do with it
            payload = raw.decode('utf-8', errors='replace')

        return {
            "topic": message.topic(),
            "partition": message.partition(),
            "offset": message.offset(),
            "timestamp": message.timestamp(),
            "key": message.key().decode('utf-8') if message.key() else None,
            "payload": payload,
        }

    async def _default_error_handler(self, error: Exception) -> None:
        """Default error handler."""
        self.logger.error("Consumer error", error=str(error))

    def get_metrics(self) -> Dict[str, Any]:
        """Get consumer metrics."""
        return {
            "messages_processed": self.messages_processed,
            "messages_failed": self.messages_failed,
            "last_message_time": self.last_message_time,
            "running": self.running,
        }
