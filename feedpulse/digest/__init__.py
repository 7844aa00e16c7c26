"""
Scheduled digests for streams with aggregation enabled.

Components:
- DigestAggregator: Hourly tick that summarises new content per stream
- next_run_from_schedule: Minute/hour cron subset, UTC
- DigestConfig: DIGEST_* settings
"""

from feedpulse.digest.aggregator import (
    DigestAggregator,
    DigestTickResult,
    format_digest_items,
)
from feedpulse.digest.config import DigestConfig
from feedpulse.digest.schedule import next_run_from_schedule

__all__ = [
    "DigestAggregator",
    "DigestConfig",
    "DigestTickResult",
    "format_digest_items",
    "next_run_from_schedule",
]
