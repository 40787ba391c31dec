"""
Core framework components for async propagation services.

Provides base classes for building observable services with Kafka
integration.
"""

from .service import AsyncService
from .consumer import KafkaConsumer, ConsumerConfig
from .producer import KafkaProducer, ProducerConfig
from .config import ServiceConfig, KafkaConfig, AwsConfig, ObservabilityConfig
from .health import HealthChecker, HealthCheck
from .metrics import MetricsCollector

__all__ = [
    "AsyncService",
    "KafkaConsumer",
    "ConsumerConfig",
    "KafkaProducer",
    "ProducerConfig",
    "ServiceConfig",
    "KafkaConfig",
    "AwsConfig",
    "ObservabilityConfig",
    "HealthChecker",
    "HealthCheck",
    "MetricsCollector",
]
