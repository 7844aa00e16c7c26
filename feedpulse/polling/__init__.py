"""
Source polling.

Components:
- PollingScheduler: Sweeps stale sources into content rows and stream jobs
- PollSweepResult / SourcePollResult: Sweep counters
- PollingConfig: POLLING_* settings
"""

from feedpulse.polling.config import PollingConfig
from feedpulse.polling.scheduler import (
    PollingScheduler,
    PollSweepResult,
    SourcePollResult,
)

__all__ = [
    "PollSweepResult",
    "PollingConfig",
    "PollingScheduler",
    "SourcePollResult",
]
