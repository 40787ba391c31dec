"""Unit tests for the service framework components."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from confluent_kafka import KafkaError, KafkaException

from services.change_propagation.app.config import ChangePropagationConfig
from shared.framework.config import KafkaConfig, ServiceConfig
from shared.framework.consumer import ConsumerConfig, KafkaConsumer
from shared.framework.health import HealthCheck, HealthChecker
from shared.framework.metrics import MetricsCollector
from shared.framework.producer import KafkaProducer, ProducerConfig
from shared.utils.errors import ConfigurationError


def kafka_message(offset, payload, partition=0, topic="cdc.records.changes.v1", error=None):
    message = MagicMock()
    message.error.return_value = error
    message.topic.return_value = topic
    message.partition.return_value = partition
    message.offset.return_value = offset
    message.timestamp.return_value = (1, 1718000000000)
    message.key.return_value = b"S#s1"
    message.value.return_value = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    return message


class TestServiceConfig:
    """Test service configuration."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("DATA_PROP_INPUT_TOPICS", raising=False)
        monkeypatch.delenv("DATA_PROP_CONSUMER_GROUP", raising=False)
        monkeypatch.setenv("DATA_PROP_ENV", "test")

        config = ChangePropagationConfig()

        assert config.service_name == "data_propagation"
        assert config.input_topics == ["cdc.records.changes.v1"]
        assert config.consumer_group == "data-propagation-test"
        assert config.template_batch_size == 10
        assert config.license_mirror_delete_on_removal is False

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("DATA_PROP_INPUT_TOPICS", "a.v1, b.v1")
        monkeypatch.setenv("DATA_PROP_LICENSE_MIRROR_DELETE_ON_REMOVAL", "true")
        monkeypatch.setenv("DATA_PROP_TEMPLATE_BATCH_SIZE", "5")

        config = ChangePropagationConfig()

        assert config.input_topics == ["a.v1", "b.v1"]
        assert config.license_mirror_delete_on_removal is True
        assert config.template_batch_size == 5

    def test_invalid_batch_size(self, monkeypatch):
        monkeypatch.setenv("DATA_PROP_TEMPLATE_BATCH_SIZE", "0")

        with pytest.raises(ConfigurationError):
            ChangePropagationConfig()

    def test_invalid_environment(self):
        with pytest.raises(ValueError):
            ServiceConfig(service_name="data_propagation", environment="moon")


class TestKafkaConsumer:
    """Test commit and redelivery behaviour."""

    def make_consumer(self, handler):
        consumer = KafkaConsumer(
            config=ConsumerConfig(topics=["cdc.records.changes.v1"], group_id="test", retry_backoff=0),
            kafka_config=KafkaConfig(bootstrap_servers="localhost:9092"),
            message_handler=handler,
            error_handler=AsyncMock(),
        )
        consumer.consumer = MagicMock()
        return consumer

    @pytest.mark.asyncio
    async def test_commit_after_success(self):
        handler = AsyncMock()
        consumer = self.make_consumer(handler)
        message = kafka_message(7, {"detail-type": "license"})

        await consumer.process_messages([message])

        parsed = handler.await_args.args[0]
        assert parsed["offset"] == 7
        assert parsed["key"] == "S#s1"
        assert parsed["payload"] == {"detail-type": "license"}
        consumer.consumer.commit.assert_called_once_with(message=message, asynchronous=False)
        consumer.consumer.seek.assert_not_called()
        assert consumer.messages_processed == 1

    @pytest.mark.asyncio
    async def test_failure_rewinds_partition(self):
        """A failed message is not committed and blocks later messages of its partition."""
        handler = AsyncMock(side_effect=[RuntimeError("partial"), None])
        consumer = self.make_consumer(handler)
        failed = kafka_message(3, {}, partition=0)
        later = kafka_message(4, {}, partition=0)
        other = kafka_message(9, {}, partition=1)

        await consumer.process_messages([failed, later, other])

        assert handler.await_count == 2
        consumer.consumer.commit.assert_called_once_with(message=other, asynchronous=False)
        seek_target = consumer.consumer.seek.call_args.args[0]
        assert (seek_target.topic, seek_target.partition, seek_target.offset) == ("cdc.records.changes.v1", 0, 3)
        consumer.error_handler.assert_awaited_once()
        assert consumer.messages_failed == 1

    @pytest.mark.asyncio
    async def test_non_json_payload_is_passed_as_text(self):
        handler = AsyncMock()
        consumer = self.make_consumer(handler)

        await consumer.process_messages([kafka_message(1, b"not json")])

        assert handler.await_args.args[0]["payload"] == "not json"

    @pytest.mark.asyncio
    async def test_partition_eof_is_skipped(self):
        handler = AsyncMock()
        consumer = self.make_consumer(handler)
        eof = MagicMock()
        eof.code.return_value = KafkaError._PARTITION_EOF

        await consumer.process_messages([None, kafka_message(1, {}, error=eof)])

        handler.assert_not_awaited()
        consumer.consumer.commit.assert_not_called()


class TestKafkaProducer:
    """Test dead-letter publishing."""

    def make_producer(self):
        producer = KafkaProducer(
            config=ProducerConfig(topic="cdc.records.changes.deadletter.v1", flush_timeout=1.0),
            kafka_config=KafkaConfig(bootstrap_servers="localhost:9092"),
        )
        producer.producer = MagicMock()
        producer.producer.flush.return_value = 0
        return producer

    @pytest.mark.asyncio
    async def test_send_message(self):
        producer = self.make_producer()

        await producer.send_message({"offset": 3}, key="S#s1")

        kwargs = producer.producer.produce.call_args.kwargs
        assert kwargs["topic"] == "cdc.records.changes.deadletter.v1"
        assert json.loads(kwargs["value"]) == {"offset": 3}
        assert kwargs["key"] == b"S#s1"
        assert producer.messages_sent == 1

    @pytest.mark.asyncio
    async def test_undelivered_message_raises(self):
        producer = self.make_producer()
        producer.producer.flush.return_value = 1

        with pytest.raises(KafkaException):
            await producer.send_message({"offset": 3})

    @pytest.mark.asyncio
    async def test_send_before_start(self):
        producer = KafkaProducer(ProducerConfig(topic="dlq"), KafkaConfig())

        with pytest.raises(RuntimeError):
            await producer.send_message({})


class TestHealthChecker:
    """Test health aggregation."""

    def make_checker(self):
        return HealthChecker(ServiceConfig(service_name="data_propagation", environment="test"))

    @pytest.mark.asyncio
    async def test_healthy_by_default(self):
        result = await self.make_checker().check_health()

        assert result["healthy"] is True
        assert result["checks"]["config"]["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_critical_failure(self):
        checker = self.make_checker()
        checker.add_check(HealthCheck(name="kafka_consumer", check_func=lambda: False))

        readiness = await checker.check_readiness()

        assert readiness["ready"] is False
        assert readiness["health"]["status"] == "unhealthy"

    @pytest.mark.asyncio
    async def test_non_critical_failure_degrades(self):
        checker = self.make_checker()

        async def flaky():
            raise RuntimeError("unreachable")

        checker.add_check(HealthCheck(name="optional", check_func=flaky, critical=False))

        result = await checker.check_health()

        assert result["healthy"] is True
        assert result["status"] == "degraded"


class TestMetricsCollector:
    """Test Prometheus metrics."""

    def test_metrics_exposed(self):
        metrics = MetricsCollector("data-propagation")
        metrics.record_message_processed("license", "success", 0.05)
        metrics.record_fanout("license.students", succeeded=2, failed=1)
        metrics.record_dead_letter()

        output = metrics.get_metrics().decode("utf-8")

        assert 'data_propagation_messages_processed_total{entity_type="license",status="success"} 1.0' in output
        assert 'data_propagation_fanout_items_total{operation="license.students",status="failed"} 1.0' in output
        assert "data_propagation_dead_lettered_total 1.0" in output
