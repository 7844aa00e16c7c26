"""
Abstract base class for Redis Streams work queues.

Provides:
- Connection lifecycle (own client from a URL, or a shared injected client)
- Consumer group creation
- Publishing with approximate stream trimming
- Consumption with automatic pending message reclaim (XAUTOCLAIM)
- Acknowledgment and dead letter handling

Delivery is at-least-once. A consumer that fails a job simply does not ack
it; once the message has been idle for ``idle_timeout_ms`` any consumer
reclaims it. Messages delivered more than ``max_delivery_attempts`` times,
or whose fields cannot be parsed, are copied to the dead letter stream and
acknowledged.
"""

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from types import TracebackType
from typing import Generic, TypeVar

import redis.asyncio as redis

from feedpulse.observability.metrics import get_metrics
from feedpulse.queues.backoff import ExponentialBackoff
from feedpulse.queues.config import QueueConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class StreamConfig:
    """Names and trimming for one Redis stream."""

    stream_name: str
    consumer_group: str
    dlq_stream_name: str
    max_stream_length: int = 50_000


class BaseRedisQueue(ABC, Generic[T]):
    """
    Base for typed Redis Streams queues.

    Subclasses implement:
        - _parse_job(): Message fields -> job of type T (raise if malformed)
        - _get_stream_config(): Stream/group/DLQ names
        - _get_consumer_prefix(): Prefix for the generated consumer name
        - _set_job_retry_count(): Record prior deliveries on the job

    Usage:
        async with MyQueue(redis_url) as queue:
            await queue.publish({"key": "value"})
            async for job in queue.consume():
                handle(job)
                await queue.ack(job.message_id)
    """

    def __init__(
        self,
        redis_url: str | None = None,
        queue_config: QueueConfig | None = None,
        redis_client: redis.Redis | None = None,
    ):
        """
        Args:
            redis_url: Connection URL, used when no client is injected
            queue_config: Reclaim and dead-letter behaviour
            redis_client: Shared client; the queue will not close it
        """
        if redis_url is None and redis_client is None:
            raise ValueError("Either redis_url or redis_client is required")

        self._redis_url = redis_url
        self._queue_config = queue_config or QueueConfig()
        self._redis: redis.Redis | None = redis_client
        self._owns_client = redis_client is None
        self._consumer_name: str | None = None
        self._stream_config: StreamConfig | None = None

    @abstractmethod
    def _parse_job(self, message_id: str, fields: dict[str, str]) -> T:
        ...

    @abstractmethod
    def _get_stream_config(self) -> StreamConfig:
        ...

    @abstractmethod
    def _get_consumer_prefix(self) -> str:
        ...

    @abstractmethod
    def _set_job_retry_count(self, job: T, retry_count: int) -> None:
        ...

    async def connect(self) -> None:
        """Open the client if needed and ensure the stream and group exist."""
        if self._redis is None:
            self._redis = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,
            )

        self._stream_config = self._get_stream_config()
        self._consumer_name = f"{self._get_consumer_prefix()}_{uuid.uuid4().hex[:8]}"

        try:
            await self._redis.xgroup_create(
                name=self._stream_config.stream_name,
                groupname=self._stream_config.consumer_group,
                id="0",
                mkstream=True,
            )
            logger.info(
                "Created consumer group %r for stream %r",
                self._stream_config.consumer_group,
                self._stream_config.stream_name,
            )
        except redis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

        logger.info(
            "Queue connected, consumer=%s stream=%s",
            self._consumer_name,
            self._stream_config.stream_name,
        )

    async def close(self) -> None:
        """Close the client if this queue opened it."""
        if self._redis is not None and self._owns_client:
            await self._redis.aclose()
            self._redis = None
            logger.info("Redis connection closed for %s", self._stream_label)

    async def __aenter__(self) -> "BaseRedisQueue[T]":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def redis(self) -> redis.Redis:
        if self._redis is None:
            raise RuntimeError("Not connected to Redis. Call connect() first.")
        return self._redis

    @property
    def stream_config(self) -> StreamConfig:
        if self._stream_config is None:
            raise RuntimeError("Not connected. Call connect() first.")
        return self._stream_config

    @property
    def _stream_label(self) -> str:
        return self._stream_config.stream_name if self._stream_config else "unknown"

    async def publish(self, fields: dict[str, str]) -> str:
        """XADD ``fields`` to the stream, trimming approximately to max length."""
        message_id = await self.redis.xadd(
            name=self.stream_config.stream_name,
            fields=fields,
            maxlen=self.stream_config.max_stream_length,
            approximate=True,
        )
        return str(message_id)

    async def consume(
        self,
        count: int = 10,
        block_ms: int = 5000,
    ) -> AsyncIterator[T]:
        """
        Yield jobs until cancelled.

        Each iteration first reclaims idle pending messages, then reads new
        ones with XREADGROUP. Redis errors back off exponentially instead of
        ending the iterator.
        """
        if self._consumer_name is None:
            raise RuntimeError("Not connected. Call connect() first.")

        backoff = ExponentialBackoff(
            base_delay=self._queue_config.backoff_base_delay,
            max_delay=self._queue_config.backoff_max_delay,
        )

        while True:
            try:
                async for job in self._reclaim_pending(
                    min(count, self._queue_config.reclaim_batch_size)
                ):
                    yield job

                messages = await self.redis.xreadgroup(
                    groupname=self.stream_config.consumer_group,
                    consumername=self._consumer_name,
                    streams={self.stream_config.stream_name: ">"},
                    count=count,
                    block=block_ms,
                )
                backoff.reset()

                for _stream, entries in messages or []:
                    for message_id, fields in entries:
                        job = await self._parse_or_dead_letter(message_id, fields)
                        if job is not None:
                            self._set_job_retry_count(job, 0)
                            yield job

            except asyncio.CancelledError:
                logger.info("Consumer for %s cancelled", self._stream_label)
                raise
            except redis.RedisError as e:
                delay = backoff.next_delay()
                logger.error(
                    "Redis error consuming %s (attempt %d), retrying in %.1fs: %s",
                    self._stream_label, backoff.attempt, delay, e,
                )
                await asyncio.sleep(delay)

    async def _parse_or_dead_letter(
        self, message_id: str, fields: dict[str, str]
    ) -> T | None:
        try:
            return self._parse_job(message_id, fields)
        except Exception as e:
            logger.error("Unparseable message %s on %s: %s", message_id, self._stream_label, e)
            await self._move_to_dlq(message_id, fields, f"parse_error: {e}")
            await self.ack(message_id)
            return None

    async def _reclaim_pending(self, count: int) -> AsyncIterator[T]:
        """
        Claim messages idle longer than ``idle_timeout_ms``.

        Messages past ``max_delivery_attempts`` are dead-lettered; the rest
        are yielded with ``retry_count = deliveries - 1``.
        """
        metrics = get_metrics()
        queue = self.stream_config.stream_name

        try:
            # [next_start_id, [(id, fields), ...], [deleted_ids]]
            result = await self.redis.xautoclaim(
                name=queue,
                groupname=self.stream_config.consumer_group,
                consumername=self._consumer_name,
                min_idle_time=self._queue_config.idle_timeout_ms,
                start_id="0-0",
                count=count,
            )
        except redis.ResponseError as e:
            if "unknown command" in str(e).lower():
                logger.warning("XAUTOCLAIM unavailable (Redis < 6.2), pending reclaim disabled")
                return
            raise

        claimed = result[1] if result and len(result) > 1 else []
        if not claimed:
            return

        logger.info("Reclaimed %d pending messages from %s", len(claimed), queue)

        for message_id, fields in claimed:
            deliveries = await self._delivery_count(message_id)

            if deliveries > self._queue_config.max_delivery_attempts:
                logger.warning(
                    "Message %s delivered %d times (max %d), moving to DLQ",
                    message_id, deliveries, self._queue_config.max_delivery_attempts,
                )
                await self._move_to_dlq(message_id, fields, "max_retries_exceeded")
                await self.ack(message_id)
                metrics.dlq_max_retries.labels(queue=queue).inc()
                continue

            job = await self._parse_or_dead_letter(message_id, fields)
            if job is None:
                continue
            self._set_job_retry_count(job, deliveries - 1)
            metrics.pending_reclaimed.labels(queue=queue).inc()
            yield job

    async def _delivery_count(self, message_id: str) -> int:
        """Times this message has been delivered, per XPENDING (1 if unknown)."""
        try:
            info = await self.redis.xpending_range(
                name=self.stream_config.stream_name,
                groupname=self.stream_config.consumer_group,
                min=message_id,
                max=message_id,
                count=1,
            )
        except redis.RedisError as e:
            logger.error("XPENDING failed for %s: %s", message_id, e)
            return 1
        return int(info[0]["times_delivered"]) if info else 1

    async def ack(self, message_id: str) -> None:
        """Acknowledge (remove from pending) one message."""
        await self.redis.xack(
            self.stream_config.stream_name,
            self.stream_config.consumer_group,
            message_id,
        )
        logger.debug("Acknowledged message %s", message_id)

    async def _move_to_dlq(
        self,
        original_id: str,
        fields: dict[str, str],
        error: str | None,
    ) -> None:
        await self.redis.xadd(
            self.stream_config.dlq_stream_name,
            {
                **fields,
                "original_id": original_id,
                "error": error or "unknown",
                "failed_at": str(time.time()),
            },
            maxlen=self._queue_config.dlq_max_length,
            approximate=True,
        )
        logger.warning("Moved message %s to %s: %s", original_id, self.stream_config.dlq_stream_name, error)

    async def get_pending_count(self) -> int:
        """Pending (delivered, unacknowledged) messages in the group."""
        try:
            info = await self.redis.xpending(
                self.stream_config.stream_name,
                self.stream_config.consumer_group,
            )
        except redis.RedisError:
            return 0
        return info["pending"] if info else 0

    async def get_stream_length(self) -> int:
        return await self.redis.xlen(self.stream_config.stream_name)

    async def get_dlq_length(self) -> int:
        return await self.redis.xlen(self.stream_config.dlq_stream_name)

    async def health_check(self) -> bool:
        try:
            await self.redis.ping()
            return True
        except redis.RedisError:
            return False
