"""Prometheus metrics collection for propagation services."""

from typing import Dict, Any, Optional

from prometheus_client import (
    Counter, Histogram, Gauge, Info,
    CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
)


class MetricsCollector:
    """Centralized metrics collection for propagation services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.prefix = service_name.replace("-", "_")
        self.registry = registry or CollectorRegistry()
        self.metrics: Dict[str, Any] = {}

        self._init_common_metrics()

    def _init_common_metrics(self):
        """Initialize common metrics for all services."""
        self.info = Info(
            f"{self.prefix}_info",
            f"Information about {self.service_name}",
            registry=self.registry
        )

        self.messages_processed = Counter(
            f"{self.prefix}_messages_processed_total",
            f"Total number of change events processed by {self.service_name}",
            ["entity_type", "status"],
            registry=self.registry
        )

        self.processing_duration = Histogram(
            f"{self.prefix}_processing_duration_seconds",
            "Change event processing duration in seconds",
            ["entity_type"],
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=self.registry
        )

        self.fanout_items = Counter(
            f"{self.prefix}_fanout_items_total",
            "Per-item downstream writes attempted during fan-out",
            ["operation", "status"],
            registry=self.registry
        )

        self.dead_lettered = Counter(
            f"{self.prefix}_dead_lettered_total",
            "Malformed events routed to the dead-letter topic",
            registry=self.registry
        )

        self.errors_total = Counter(
            f"{self.prefix}_errors_total",
            f"Total number of errors in {self.service_name}",
            ["error_type", "component"],
            registry=self.registry
        )

        self.health_status = Gauge(
            f"{self.prefix}_health_status",
            f"Health status of {self.service_name} (1=healthy, 0=unhealthy)",
            registry=self.registry
        )

        self.memory_usage = Gauge(
            f"{self.prefix}_memory_usage_bytes",
            f"Memory usage in bytes for {self.service_name}",
            registry=self.registry
        )

    def record_message_processed(self, entity_type: str, status: str, duration: Optional[float] = None):
        """Record a change event outcome."""
        self.messages_processed.labels(entity_type=entity_type, status=status).inc()
        if duration is not None:
            self.processing_duration.labels(entity_type=entity_type).observe(duration)

    def record_fanout(self, operation: str, succeeded: int, failed: int):
        """Record the per-item outcome counts of one fan-out."""
        if succeeded:
            self.fanout_items.labels(operation=operation, status="success").inc(succeeded)
        if failed:
            self.fanout_items.labels(operation=operation, status="failed").inc(failed)

    def record_dead_letter(self):
        self.dead_lettered.inc()

    def record_error(self, error_type: str, component: str):
        """Record an error metric."""
        self.errors_total.labels(error_type=error_type, component=component).inc()

    def set_health_status(self, healthy: bool):
        """Set the health status metric."""
        self.health_status.set(1 if healthy else 0)

    def set_memory_usage(self, bytes_used: int):
        """Set the memory usage metric."""
        self.memory_usage.set(bytes_used)

    def update_service_info(self, version: str, environment: str, **kwargs):
        """Update service information."""
        self.info.info({"version": version, "environment": environment, **kwargs})

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self.registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics."""
        return CONTENT_TYPE_LATEST
