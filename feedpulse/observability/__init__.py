"""Observability layer - logging and metrics."""

from feedpulse.observability.logging import setup_logging
from feedpulse.observability.metrics import MetricsCollector, get_metrics

__all__ = ["setup_logging", "MetricsCollector", "get_metrics"]
