"""
Redelivery settings for Redis Streams queues.

A message that stays unacknowledged for ``idle_timeout_ms`` is reclaimed
by the next consumer. Once it has been delivered more than
``max_delivery_attempts`` times it goes to the dead letter stream.
"""

from dataclasses import dataclass


@dataclass
class QueueConfig:
    """
    Attributes:
        idle_timeout_ms: Pending time before a message may be reclaimed
        max_delivery_attempts: Deliveries allowed before dead-lettering
        reclaim_batch_size: Messages per XAUTOCLAIM call
        dlq_max_length: Approximate cap on the dead letter stream
        backoff_base_delay: First delay after a consume-loop Redis error
        backoff_max_delay: Ceiling for consume-loop delays
    """

    idle_timeout_ms: int = 30_000
    max_delivery_attempts: int = 3
    reclaim_batch_size: int = 10
    dlq_max_length: int = 10_000

    backoff_base_delay: float = 1.0
    backoff_max_delay: float = 60.0
