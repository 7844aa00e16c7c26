"""
Redis Streams queue primitives.

Classes:
    BaseRedisQueue: Typed queue base with pending reclaim and DLQ handling
    StreamConfig: Stream, consumer group and DLQ names
    QueueConfig: Redelivery limits and consume-loop backoff
    ExponentialBackoff: Delay calculator for supervised loops
"""

from feedpulse.queues.backoff import ExponentialBackoff
from feedpulse.queues.base import BaseRedisQueue, StreamConfig
from feedpulse.queues.config import QueueConfig

__all__ = ["BaseRedisQueue", "ExponentialBackoff", "QueueConfig", "StreamConfig"]
