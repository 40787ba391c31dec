"""
Configuration management for propagation services.

Provides typed configuration classes with environment variable
injection and validation.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Dict, Any


@dataclass
class KafkaConfig:
    """Kafka configuration."""
    bootstrap_servers: str = field(default_factory=lambda: os.getenv("DATA_PROP_KAFKA_BOOTSTRAP", "localhost:9092"))
    consumer_group: str = field(default_factory=lambda: os.getenv("DATA_PROP_CONSUMER_GROUP", "data-propagation"))
    auto_offset_reset: str = field(default_factory=lambda: os.getenv("DATA_PROP_KAFKA_AUTO_OFFSET_RESET", "earliest"))
    max_poll_records: int = field(default_factory=lambda: int(os.getenv("DATA_PROP_KAFKA_MAX_POLL_RECORDS", "100")))
    session_timeout_ms: int = field(default_factory=lambda: int(os.getenv("DATA_PROP_KAFKA_SESSION_TIMEOUT_MS", "30000")))
    heartbeat_interval_ms: int = field(default_factory=lambda: int(os.getenv("DATA_PROP_KAFKA_HEARTBEAT_INTERVAL_MS", "3000")))


@dataclass
class AwsConfig:
    """Document store, blob store and workflow settings."""
    region: str = field(default_factory=lambda: os.getenv("DATA_PROP_AWS_REGION", "us-west-2"))
    endpoint_url: Optional[str] = field(default_factory=lambda: os.getenv("DATA_PROP_AWS_ENDPOINT_URL"))
    data_bucket: str = field(default_factory=lambda: os.getenv("DATA_PROP_DATA_BUCKET", ""))
    data_table: str = field(default_factory=lambda: os.getenv("DATA_PROP_DATA_TABLE", ""))
    student_table: str = field(default_factory=lambda: os.getenv("DATA_PROP_STUDENT_TABLE", ""))
    team_table: str = field(default_factory=lambda: os.getenv("DATA_PROP_TEAM_TABLE", ""))
    student_removal_workflow_arn: str = field(default_factory=lambda: os.getenv("DATA_PROP_STUDENT_REMOVAL_WORKFLOW_ARN", ""))


@dataclass
class ObservabilityConfig:
    """Observability configuration."""
    log_level: str = field(default_factory=lambda: os.getenv("DATA_PROP_LOG_LEVEL", "info"))
    log_format: str = field(default_factory=lambda: os.getenv("DATA_PROP_LOG_FORMAT", "json"))
    trace_enabled: bool = field(default_factory=lambda: os.getenv("DATA_PROP_TRACE_ENABLED", "true").lower() == "true")
    otel_endpoint: Optional[str] = field(default_factory=lambda: os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"))
    health_port: int = field(default_factory=lambda: int(os.getenv("DATA_PROP_HEALTH_PORT", "8080")))


@dataclass
class ServiceConfig:
    """Base service configuration."""
    service_name: str
    environment: str = field(default_factory=lambda: os.getenv("DATA_PROP_ENV", "local"))

    # Sub-configurations
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    aws: AwsConfig = field(default_factory=AwsConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.service_name:
            raise ValueError("service_name is required")

        if self.environment not in ["local", "dev", "test", "staging", "prod"]:
            raise ValueError(f"Invalid environment: {self.environment}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "service_name": self.service_name,
            "environment": self.environment,
            "kafka": {
                "bootstrap_servers": self.kafka.bootstrap_servers,
                "consumer_group": self.kafka.consumer_group,
                "auto_offset_reset": self.kafka.auto_offset_reset,
                "max_poll_records": self.kafka.max_poll_records,
                "session_timeout_ms": self.kafka.session_timeout_ms,
            },
            "aws": {
                "region": self.aws.region,
                "data_bucket": self.aws.data_bucket,
                "data_table": self.aws.data_table,
                "student_table": self.aws.student_table,
                "team_table": self.aws.team_table,
                "student_removal_workflow_arn": self.aws.student_removal_workflow_arn,
            },
            "observability": {
                "log_level": self.observability.log_level,
                "trace_enabled": self.observability.trace_enabled,
                "health_port": self.observability.health_port,
            },
        }
