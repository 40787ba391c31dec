"""
Entry point for the data-propagation service.

Consumes change envelopes (or raw document-store stream records) from
Kafka, propagates them through the router and commits each message only
once every projection write for it has succeeded.
"""

from __future__ import annotations

import asyncio
import importlib
import inspect
import json
import time
from typing import Any, Callable, Dict, Optional

from aiohttp import web
import structlog

from shared.framework.consumer import ConsumerConfig, KafkaConsumer
from shared.framework.health import HealthCheck
from shared.framework.producer import KafkaProducer, ProducerConfig
from shared.framework.service import AsyncService
from shared.schemas.events import ChangeEnvelope, envelope_from_stream_record
from shared.storage import AwsClients, S3BlobStore
from shared.storage.dynamodb import unmarshall
from shared.utils.errors import (
    ConfigurationError,
    MalformedEventError,
    PartialPropagationError,
    create_error_context,
)
from shared.utils.logging import setup_logging
from shared.utils.tracing import (
    add_span_event,
    set_span_attribute,
    setup_tracing,
    trace_async_function,
    trace_kafka_consumer,
)

from .config import ChangePropagationConfig
from .fanout import PropagationReport
from .router import ChangeRouter, Collaborators, build_router

logger = structlog.get_logger(__name__)


def load_collaborator_factory(path: str) -> Callable[..., Any]:
    """Import ``package.module:callable`` (or ``package.module.callable``)."""
    if not path:
        raise ConfigurationError(
            "No collaborator factory configured",
            config_key="DATA_PROP_COLLABORATOR_FACTORY",
        )

    module_name, _, attribute = path.partition(":") if ":" in path else path.rpartition(".")
    try:
        module = importlib.import_module(module_name)
        return getattr(module, attribute)
    except (ImportError, AttributeError, ValueError) as e:
        raise ConfigurationError(
            f"Cannot load collaborator factory {path}",
            config_key="DATA_PROP_COLLABORATOR_FACTORY",
            config_value=path,
        ) from e


def decode_payload(payload: Any) -> Optional[ChangeEnvelope]:
    """Turn a consumed payload into an envelope.

    Returns ``None`` for stream records whose key shape is not routed.
    """
    if not isinstance(payload, dict):
        raise MalformedEventError("Message payload is not a JSON object")

    if "dynamodb" in payload:
        images = payload["dynamodb"]
        new = unmarshall(images["NewImage"]) if images.get("NewImage") else None
        old = unmarshall(images["OldImage"]) if images.get("OldImage") else None
        return envelope_from_stream_record(new, old)

    return ChangeEnvelope.from_dict(payload)


class PropagationService(AsyncService):
    """Service propagating record changes to their projections."""

    def __init__(
        self,
        config: Optional[ChangePropagationConfig] = None,
        router: Optional[ChangeRouter] = None,
        clients: Optional[AwsClients] = None,
    ) -> None:
        config = config or ChangePropagationConfig()
        super().__init__(config)
        self.config = config
        self.router = router
        self.clients = clients

        self.dlq_producer = KafkaProducer(
            config=ProducerConfig(topic=config.dlq_topic),
            kafka_config=config.kafka,
        )
        self.consumer = KafkaConsumer(
            config=ConsumerConfig(
                topics=config.input_topics,
                group_id=config.consumer_group,
                auto_offset_reset=config.kafka.auto_offset_reset,
                max_poll_records=config.kafka.max_poll_records,
                session_timeout_ms=config.kafka.session_timeout_ms,
                heartbeat_interval_ms=config.kafka.heartbeat_interval_ms,
                retry_backoff=config.retry_backoff_seconds,
            ),
            kafka_config=config.kafka,
            message_handler=self.handle_message,
            error_handler=self._handle_consumer_error,
        )

        self.add_producer(self.dlq_producer)
        self.add_consumer(self.consumer)

        self.health_checker.add_check(
            HealthCheck(
                name="kafka_consumer",
                check_func=lambda: self.consumer.running,
                description="Change event consumer is polling",
            )
        )

    async def _startup_hook(self) -> None:
        if self.router is None:
            self.router = await self._build_router()
        logger.info(
            "Data propagation service started",
            input_topics=self.config.input_topics,
            dlq_topic=self.config.dlq_topic,
        )

    async def _shutdown_hook(self) -> None:
        logger.info("Data propagation service stopped")

    async def _build_router(self) -> ChangeRouter:
        self.clients = self.clients or AwsClients.from_service_config(self.config.aws)

        factory = load_collaborator_factory(self.config.collaborator_factory)
        collaborators = factory(self.config, self.clients)
        if inspect.isawaitable(collaborators):
            collaborators = await collaborators
        if not isinstance(collaborators, Collaborators):
            raise ConfigurationError(
                "Collaborator factory must return Collaborators",
                config_key="DATA_PROP_COLLABORATOR_FACTORY",
                config_value=self.config.collaborator_factory,
            )

        if collaborators.blobs is None:
            if not self.config.aws.data_bucket:
                raise ConfigurationError("Data bucket is required", config_key="DATA_PROP_DATA_BUCKET")
            collaborators.blobs = S3BlobStore(self.config.aws.data_bucket, self.clients)

        return build_router(
            collaborators,
            template_batch_size=self.config.template_batch_size,
            counter_max_attempts=self.config.counter_max_attempts,
            delete_license_mirror_on_removal=self.config.license_mirror_delete_on_removal,
        )

    def _setup_routes(self) -> None:
        super()._setup_routes()
        self.app.router.add_get("/status", self._status_handler)

    async def _status_handler(self, request: web.Request) -> web.Response:
        data = {
            "service": self.config.service_slug,
            "input_topics": self.config.input_topics,
            "dlq_topic": self.config.dlq_topic,
            "routes": sorted(self.router.routes) if self.router else [],
            "consumer": self.consumer.get_metrics(),
            "dead_letter": self.dlq_producer.get_metrics(),
            "config": self.config.to_dict(),
        }
        return web.json_response(data)

    async def handle_message(self, message: Dict[str, Any]) -> None:
        """Propagate one consumed message.

        Returns normally when the message may be committed. Raises when it
        must be redelivered.
        """
        start = time.perf_counter()
        try:
            envelope = decode_payload(message.get("payload"))
        except (MalformedEventError, KeyError, TypeError) as exc:
            await self._dead_letter(message, self._as_malformed(exc))
            return

        if envelope is None:
            logger.debug("Stream record not routed", offset=message.get("offset"))
            return

        async with trace_async_function("data_propagation.dispatch", attributes={"entity.type": envelope.entity_type}):
            trace_kafka_consumer(message.get("topic"), message.get("partition"), message.get("offset"))
            try:
                report = await self.router.dispatch(envelope)
            except MalformedEventError as exc:
                await self._dead_letter(message, exc)
                return
            set_span_attribute("entity.id", report.entity_id)
            set_span_attribute("propagation.failed", report.failed)

        self._record(report, time.perf_counter() - start)
        report.raise_for_failures()

    def _record(self, report: PropagationReport, duration: float) -> None:
        status = "success" if report.ok else "partial"
        self.metrics.record_message_processed(report.entity_type, status, duration)
        for step in report.steps:
            self.metrics.record_fanout(step.operation, step.succeeded, step.failed)
        if not report.ok:
            logger.warning("Partial propagation; message will be redelivered", **report.to_dict())

    @staticmethod
    def _as_malformed(exc: Exception) -> MalformedEventError:
        if isinstance(exc, MalformedEventError):
            return exc
        return MalformedEventError(f"Malformed stream record: {exc}")

    async def _dead_letter(self, message: Dict[str, Any], error: MalformedEventError) -> None:
        """Route an undecodable message to the dead-letter topic."""
        self.metrics.record_dead_letter()
        self.metrics.record_error(error_type="malformed_event", component="data-propagation")
        logger.warning(
            "Malformed change event",
            error=error.message,
            topic=message.get("topic"),
            partition=message.get("partition"),
            offset=message.get("offset"),
        )
        add_span_event("dead_lettered", {"error.code": error.error_code})

        if error.context is None:
            error.context = create_error_context(
                service=self.config.service_slug,
                operation="decode",
                entity_type=error.entity_type,
                correlation_id=f"{message.get('topic')}:{message.get('partition')}:{message.get('offset')}",
            )

        dead_letter = {
            "failed_topic": message.get("topic"),
            "partition": message.get("partition"),
            "offset": message.get("offset"),
            "error": error.to_dict(),
            "raw_event": json.dumps(message.get("payload"), default=str),
            "dead_lettered_at": time.time(),
        }
        await self.dlq_producer.send_message(payload=dead_letter, key=message.get("key"))

    async def _handle_consumer_error(self, error: Exception) -> None:
        error_type = "partial_propagation" if isinstance(error, PartialPropagationError) else "consumer_error"
        self.metrics.record_error(error_type=error_type, component="data-propagation")


async def main() -> None:
    """Service entrypoint."""
    config = ChangePropagationConfig()
    setup_logging(config.service_slug, config.observability.log_level, config.observability.log_format)
    setup_tracing(config.service_slug, endpoint=config.otel_endpoint, enabled=config.observability.trace_enabled)

    service = PropagationService(config=config)
    await service.run()


if __name__ == "__main__":
    asyncio.run(main())
