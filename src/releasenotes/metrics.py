"""Prometheus metrics for release notes observability.

Metrics are exposed at the `/metrics` endpoint in Prometheus format.

Metrics Defined:
- releasenotes_webhook_events_total: Counter of webhook deliveries by event
  and outcome status
- releasenotes_signature_failures_total: Counter of rejected signatures
- releasenotes_backfill_errors_total: Counter of skipped backfill steps
- releasenotes_changelog_generations_total: Counter of generated changelogs
  by format and source (llm or fallback)
- releasenotes_generation_duration_seconds: Histogram of assembly time
"""

import logging
from typing import Optional

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)


logger = logging.getLogger(__name__)


# Generation runs up to two backend calls bounded by the LLM timeout
GENERATION_DURATION_BUCKETS = (
    0.1,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
    60.0,
    120.0,
)


class ReleaseNotesMetrics:
    """Container for all release notes Prometheus metrics.

    Supports custom registries so tests can create isolated instances.

    Example:
        >>> metrics = ReleaseNotesMetrics(registry=CollectorRegistry())
        >>> metrics.record_webhook_event("release", "created")
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or REGISTRY

        self.webhook_events_total = Counter(
            "releasenotes_webhook_events_total",
            "Webhook deliveries by event type and outcome",
            labelnames=["event", "status"],
            registry=self.registry,
        )

        self.signature_failures_total = Counter(
            "releasenotes_signature_failures_total",
            "Webhook deliveries rejected for a missing or invalid signature",
            registry=self.registry,
        )

        self.backfill_errors_total = Counter(
            "releasenotes_backfill_errors_total",
            "Backfill steps skipped after a GitHub or store failure",
            labelnames=["stage"],
            registry=self.registry,
        )

        self.changelog_generations_total = Counter(
            "releasenotes_changelog_generations_total",
            "Changelogs assembled by output format and content source",
            labelnames=["format", "source"],
            registry=self.registry,
        )

        self.generation_duration_seconds = Histogram(
            "releasenotes_generation_duration_seconds",
            "Time spent assembling a changelog in seconds",
            buckets=GENERATION_DURATION_BUCKETS,
            registry=self.registry,
        )

    def record_webhook_event(self, event: str, status: str) -> None:
        self.webhook_events_total.labels(event=event, status=status).inc()

    def record_signature_failure(self) -> None:
        self.signature_failures_total.inc()

    def record_backfill_error(self, stage: str) -> None:
        """Record a skipped backfill step.

        Args:
            stage: "list_pull_requests", "pull_request" or "commits".
        """
        self.backfill_errors_total.labels(stage=stage).inc()

    def record_generation(
        self,
        format: str,
        source: str,
        duration_seconds: float,
    ) -> None:
        self.changelog_generations_total.labels(format=format, source=source).inc()
        self.generation_duration_seconds.observe(duration_seconds)


# Global metrics instance for the default registry
_default_metrics: Optional[ReleaseNotesMetrics] = None


def get_metrics(registry: Optional[CollectorRegistry] = None) -> ReleaseNotesMetrics:
    """Get or create the metrics instance.

    Args:
        registry: Optional Prometheus registry. If None, returns the
                  global metrics instance for the default registry.
    """
    global _default_metrics

    if registry is not None:
        return ReleaseNotesMetrics(registry=registry)

    if _default_metrics is None:
        _default_metrics = ReleaseNotesMetrics()

    return _default_metrics


def generate_metrics_output(registry: Optional[CollectorRegistry] = None) -> bytes:
    """Generate Prometheus metrics output for the /metrics endpoint."""
    return generate_latest(registry or REGISTRY)
