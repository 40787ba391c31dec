"""
Configuration for the change-propagation service.
"""

from __future__ import annotations

import os

from shared.framework.config import ServiceConfig
from shared.utils.errors import ConfigurationError


class ChangePropagationConfig(ServiceConfig):
    """Service configuration loaded from environment variables."""

    def __init__(self) -> None:
        super().__init__(service_name="data_propagation")

        # Human-readable slug used for logging where hyphenated format is preferred
        self.service_slug = "data-propagation"

        # Topics
        self.input_topics = [
            topic.strip()
            for topic in os.getenv("DATA_PROP_INPUT_TOPICS", "cdc.records.changes.v1").split(",")
            if topic.strip()
        ]
        self.dlq_topic = os.getenv("DATA_PROP_DLQ_TOPIC", "cdc.records.changes.deadletter.v1")

        # Consumer
        self.consumer_group = os.getenv(
            "DATA_PROP_CONSUMER_GROUP",
            f"{self.kafka.consumer_group}-{self.environment}",
        )
        self.retry_backoff_seconds = float(os.getenv("DATA_PROP_RETRY_BACKOFF_SECONDS", "1.0"))

        # Fan-out
        self.template_batch_size = int(os.getenv("DATA_PROP_TEMPLATE_BATCH_SIZE", "10"))
        self.counter_max_attempts = int(os.getenv("DATA_PROP_COUNTER_MAX_ATTEMPTS", "5"))
        self.license_mirror_delete_on_removal = (
            os.getenv("DATA_PROP_LICENSE_MIRROR_DELETE_ON_REMOVAL", "false").lower() == "true"
        )

        # Dotted path to a callable returning the record store collaborators
        self.collaborator_factory = os.getenv("DATA_PROP_COLLABORATOR_FACTORY", "")

        # Tracing endpoint override
        self.otel_endpoint = self.observability.otel_endpoint

        self.validate()

    def validate(self) -> None:
        """Reject settings the handlers cannot work with."""
        if not self.input_topics:
            raise ConfigurationError("At least one input topic is required", config_key="DATA_PROP_INPUT_TOPICS")
        if self.template_batch_size < 1:
            raise ConfigurationError(
                "Template batch size must be positive",
                config_key="DATA_PROP_TEMPLATE_BATCH_SIZE",
                config_value=self.template_batch_size,
            )
        if self.counter_max_attempts < 1:
            raise ConfigurationError(
                "Counter attempts must be positive",
                config_key="DATA_PROP_COUNTER_MAX_ATTEMPTS",
                config_value=self.counter_max_attempts,
            )
