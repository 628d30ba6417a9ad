"""Prometheus metrics for the interruption controller.

Metrics live on a registry owned by an InterruptionMetrics instance so
tests and embedders can hold several controllers without collisions.

Usage:
    metrics = InterruptionMetrics()
    metrics.received_messages.labels(message_type="SpotInterruption").inc()
    start_metrics_server(8080, metrics.registry)
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from prometheus_client import CollectorRegistry, Counter, Histogram, start_http_server

logger = logging.getLogger(__name__)

METRICS_NAMESPACE = "interruption"

# Interruption warnings arrive up to minutes before the event, health
# notices up to weeks before, so buckets span seconds to days.
LATENCY_BUCKETS = (
    1.0,
    5.0,
    10.0,
    30.0,
    60.0,
    120.0,
    300.0,
    600.0,
    1800.0,
    3600.0,
    21600.0,
    86400.0,
    604800.0,
)


class InterruptionMetrics:
    """Counters and histograms emitted while handling notifications."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        self.received_messages = Counter(
            "received_messages_total",
            "Count of messages received from the interruption queue, by message type.",
            ["message_type"],
            namespace=METRICS_NAMESPACE,
            registry=self.registry,
        )
        self.deleted_messages = Counter(
            "deleted_messages_total",
            "Count of messages deleted from the interruption queue.",
            namespace=METRICS_NAMESPACE,
            registry=self.registry,
        )
        self.message_latency = Histogram(
            "message_queue_duration_seconds",
            "Time from the event occurring to the message being handled.",
            namespace=METRICS_NAMESPACE,
            buckets=LATENCY_BUCKETS,
            registry=self.registry,
        )
        self.claims_disrupted = Counter(
            "nodeclaims_disrupted_total",
            "Count of claims removed because of an interruption notification.",
            ["reason", "nodepool", "capacity_type"],
            namespace=METRICS_NAMESPACE,
            registry=self.registry,
        )

    def observe_latency(self, start_time: datetime | None) -> None:
        """Record time elapsed since the event started.

        Notifications without a start time are skipped.
        """
        if start_time is None:
            return
        elapsed = (datetime.now(UTC) - start_time).total_seconds()
        self.message_latency.observe(max(elapsed, 0.0))

    def sample(self, name: str, labels: dict[str, str] | None = None) -> float:
        """Read the current value of a sample, 0.0 when absent."""
        value = self.registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0


def start_metrics_server(port: int, registry: CollectorRegistry) -> None:
    """Expose the registry for Prometheus scraping."""
    start_http_server(port, registry=registry)
    logger.info("Metrics server started", extra={"port": port})
