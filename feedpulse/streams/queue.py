"""
Redis Streams queue for (stream, content) processing jobs.

The polling scheduler enqueues one job per active stream for every newly
created content row; StreamWorker consumes them. Fields are plain strings:
``stream_id``, ``content_id`` and ``queued_at``.
"""

import logging
import time
from dataclasses import dataclass

import redis.asyncio as redis

from feedpulse.queues.base import BaseRedisQueue, StreamConfig
from feedpulse.queues.config import QueueConfig
from feedpulse.streams.config import StreamsConfig

logger = logging.getLogger(__name__)


@dataclass
class StreamJob:
    """
    One unit of stream processing.

    Attributes:
        stream_id: Stream whose trigger/notification prompts apply
        content_id: Persisted content row to evaluate
        message_id: Redis message id, set on consumed jobs
        retry_count: Prior deliveries of this message
    """

    stream_id: str
    content_id: str
    message_id: str = ""
    retry_count: int = 0

    def to_fields(self) -> dict[str, str]:
        return {
            "stream_id": self.stream_id,
            "content_id": self.content_id,
            "queued_at": str(time.time()),
        }


class StreamJobQueue(BaseRedisQueue[StreamJob]):
    """
    Work queue between the polling scheduler and the stream worker.

    Streams:
        - ``stream_jobs``: pending jobs
        - ``stream_jobs:dlq``: unparseable or exhausted jobs
    """

    def __init__(
        self,
        redis_url: str | None = None,
        config: StreamsConfig | None = None,
        redis_client: redis.Redis | None = None,
    ):
        self._config = config or StreamsConfig()
        super().__init__(
            redis_url=redis_url,
            queue_config=QueueConfig(
                idle_timeout_ms=self._config.idle_timeout_ms,
                max_delivery_attempts=self._config.max_delivery_attempts,
            ),
            redis_client=redis_client,
        )

    def _get_stream_config(self) -> StreamConfig:
        return StreamConfig(
            stream_name=self._config.stream_name,
            consumer_group=self._config.consumer_group,
            dlq_stream_name=self._config.dlq_stream_name,
            max_stream_length=self._config.max_stream_length,
        )

    def _get_consumer_prefix(self) -> str:
        return "stream_worker"

    def _parse_job(self, message_id: str, fields: dict[str, str]) -> StreamJob:
        stream_id = fields.get("stream_id")
        content_id = fields.get("content_id")
        if not stream_id or not content_id:
            raise ValueError(f"missing stream_id/content_id in {sorted(fields)}")
        return StreamJob(stream_id=stream_id, content_id=content_id, message_id=message_id)

    def _set_job_retry_count(self, job: StreamJob, retry_count: int) -> None:
        job.retry_count = retry_count

    async def enqueue(self, job: StreamJob) -> str:
        """Publish a job; returns the Redis message id."""
        message_id = await self.publish(job.to_fields())
        logger.debug(
            "Enqueued job stream=%s content=%s id=%s",
            job.stream_id, job.content_id, message_id,
        )
        return message_id
