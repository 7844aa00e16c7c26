"""
Stream processing: per-item trigger check, render and dispatch.

Components:
- Stream, LogEntry, LlmOutput: Persisted stream entities
- StreamJobQueue / StreamJob: Redis Streams work queue
- StreamProcessor: Live and backtest state machine
- StreamWorker: Bounded-concurrency queue consumer
- STREAM_PRESETS: Ready-made trigger/notification prompt pairs
"""

from feedpulse.streams.config import StreamsConfig
from feedpulse.streams.presets import STREAM_PRESETS, StreamPreset, get_preset
from feedpulse.streams.processor import (
    BacktestOutcome,
    ProcessOutcome,
    StreamProcessor,
)
from feedpulse.streams.queue import StreamJob, StreamJobQueue
from feedpulse.streams.repository import (
    LlmOutputRepository,
    LogRepository,
    StreamRepository,
)
from feedpulse.streams.schemas import LlmOutput, LogEntry, Stream
from feedpulse.streams.worker import StreamWorker

__all__ = [
    "BacktestOutcome",
    "LlmOutput",
    "LlmOutputRepository",
    "LogEntry",
    "LogRepository",
    "ProcessOutcome",
    "STREAM_PRESETS",
    "Stream",
    "StreamJob",
    "StreamJobQueue",
    "StreamPreset",
    "StreamProcessor",
    "StreamRepository",
    "StreamWorker",
    "StreamsConfig",
    "get_preset",
]
