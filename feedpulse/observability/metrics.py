"""
Prometheus metrics for monitoring the ingestion-to-notification pipeline.

Defines and exposes metrics for:
- Content ingestion per source type
- Adapter failures (the side channel for fail-soft fetches)
- Stream job outcomes and latency
- Notification delivery per channel
- LLM calls per provider
- Queue reclaim / dead-letter activity
- Digest and backtest progress

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from feedpulse.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds); LLM calls dominate the tail
LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the feedpulse pipeline.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_ingestion("rss", count=3, latency=0.4)
        metrics.record_job("triggered", latency=1.2)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        # Ingestion
        self.content_ingested = Counter(
            "feedpulse_content_ingested_total",
            "Content rows created by the polling scheduler",
            ["source_type"],
        )

        self.content_duplicates = Counter(
            "feedpulse_content_duplicates_total",
            "Fetched items skipped because (source, external_id) already exists",
            ["source_type"],
        )

        self.adapter_errors = Counter(
            "feedpulse_adapter_errors_total",
            "Adapter fetch failures (fetch returned an empty list)",
            ["source_type", "error_type"],
        )

        self.fetch_latency = Histogram(
            "feedpulse_fetch_latency_seconds",
            "Time to fetch one source through its adapter",
            ["source_type"],
            buckets=LATENCY_BUCKETS,
        )

        self.sources_polled = Counter(
            "feedpulse_sources_polled_total",
            "Sources visited by the polling sweep",
            ["status"],  # ok, failed
        )

        self.jobs_enqueued = Counter(
            "feedpulse_jobs_enqueued_total",
            "Stream processing jobs published to the work queue",
        )

        # Stream processing
        self.jobs_processed = Counter(
            "feedpulse_jobs_processed_total",
            "Stream jobs finished, by outcome",
            ["outcome"],  # sent, send_failed, duplicate, not_triggered, not_found, failed, error
        )

        self.job_latency = Histogram(
            "feedpulse_job_latency_seconds",
            "Wall time of one (stream, content) job",
            buckets=LATENCY_BUCKETS,
        )

        # Notifications
        self.notifications_sent = Counter(
            "feedpulse_notifications_total",
            "Notification delivery attempts, by channel and status",
            ["channel", "status"],  # success, failure, unavailable, deduplicated
        )

        # LLM
        self.llm_calls = Counter(
            "feedpulse_llm_calls_total",
            "LLM completion calls, by provider and status",
            ["provider", "status"],
        )

        self.llm_latency = Histogram(
            "feedpulse_llm_latency_seconds",
            "LLM completion latency",
            ["provider"],
            buckets=LATENCY_BUCKETS,
        )

        # Queue health
        self.queue_pending = Gauge(
            "feedpulse_queue_pending",
            "Number of pending (unacknowledged) messages",
            ["queue"],
        )

        self.pending_reclaimed = Counter(
            "feedpulse_pending_reclaimed_total",
            "Pending messages reclaimed from idle consumers",
            ["queue"],
        )

        self.dlq_max_retries = Counter(
            "feedpulse_dlq_max_retries_total",
            "Messages moved to the dead letter queue after max delivery attempts",
            ["queue"],
        )

        # Digest / backtest
        self.digests_generated = Counter(
            "feedpulse_digests_generated_total",
            "Digest windows processed, by result",
            ["result"],  # generated, empty, initialized, error
        )

        self.backtest_items = Counter(
            "feedpulse_backtest_items_total",
            "Backtest items replayed, by result status",
            ["status"],  # SUCCESS, FAILURE
        )

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info("Prometheus metrics server started on port %d", port)

    # Convenience methods

    def record_ingestion(
        self,
        source_type: str,
        count: int = 1,
        latency: float | None = None,
    ) -> None:
        """Record content rows created for a source type."""
        if count:
            self.content_ingested.labels(source_type=source_type).inc(count)
        if latency is not None:
            self.fetch_latency.labels(source_type=source_type).observe(latency)

    def record_adapter_error(self, source_type: str, error_type: str) -> None:
        """Record an adapter failure that was converted into an empty fetch."""
        self.adapter_errors.labels(
            source_type=source_type, error_type=error_type
        ).inc()

    def record_job(self, outcome: str, latency: float | None = None) -> None:
        """Record a finished stream job."""
        self.jobs_processed.labels(outcome=outcome).inc()
        if latency is not None:
            self.job_latency.observe(latency)

    def record_notification(self, channel: str, status: str) -> None:
        """Record a notification delivery attempt."""
        self.notifications_sent.labels(channel=channel, status=status).inc()

    def record_llm_call(
        self,
        provider: str,
        status: str,
        latency: float | None = None,
    ) -> None:
        """Record one LLM completion call."""
        self.llm_calls.labels(provider=provider, status=status).inc()
        if latency is not None:
            self.llm_latency.labels(provider=provider).observe(latency)

    def set_queue_pending(self, queue: str, depth: int) -> None:
        """Set pending message gauge for a queue."""
        self.queue_pending.labels(queue=queue).set(depth)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
