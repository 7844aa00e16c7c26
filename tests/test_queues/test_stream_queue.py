"""
Tests for the Redis Streams job queue.

Tests verify that StreamJobQueue correctly:
- Creates the consumer group and tolerates an existing one
- Publishes (stream_id, content_id) jobs
- Reclaims idle messages and dead-letters exhausted ones
- Dead-letters unparseable messages
"""

from unittest.mock import AsyncMock

import pytest
from redis import ResponseError

from feedpulse.queues import QueueConfig, StreamConfig
from feedpulse.streams.config import StreamsConfig
from feedpulse.streams.queue import StreamJob, StreamJobQueue


@pytest.fixture
def redis_client() -> AsyncMock:
    client = AsyncMock()
    client.xadd = AsyncMock(return_value="1-0")
    client.xautoclaim = AsyncMock(return_value=["0-0", [], []])
    client.xpending_range = AsyncMock(return_value=[])
    return client


@pytest.fixture
def queue(redis_client) -> StreamJobQueue:
    q = StreamJobQueue(
        redis_client=redis_client,
        config=StreamsConfig(idle_timeout_ms=1_000, max_delivery_attempts=3),
    )
    q._consumer_name = "stream_worker_abc123"
    q._stream_config = q._get_stream_config()
    return q


class TestConfig:
    def test_queue_config_defaults(self):
        config = QueueConfig()
        assert config.idle_timeout_ms == 30_000
        assert config.max_delivery_attempts == 3
        assert config.reclaim_batch_size == 10

    def test_stream_config_default_length(self):
        config = StreamConfig(stream_name="s", consumer_group="g", dlq_stream_name="s:dlq")
        assert config.max_stream_length == 50_000

    def test_requires_url_or_client(self):
        with pytest.raises(ValueError):
            StreamJobQueue()


class TestConnect:
    @pytest.mark.asyncio
    async def test_creates_group(self, redis_client):
        q = StreamJobQueue(redis_client=redis_client)

        await q.connect()

        redis_client.xgroup_create.assert_awaited_once_with(
            name="stream_jobs", groupname="stream_workers", id="0", mkstream=True
        )
        assert q._consumer_name.startswith("stream_worker_")

    @pytest.mark.asyncio
    async def test_existing_group_is_fine(self, redis_client):
        redis_client.xgroup_create.side_effect = ResponseError(
            "BUSYGROUP Consumer Group name already exists"
        )
        q = StreamJobQueue(redis_client=redis_client)

        await q.connect()

        assert q.stream_config.stream_name == "stream_jobs"

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self, redis_client):
        q = StreamJobQueue(redis_client=redis_client)
        await q.connect()

        await q.close()

        redis_client.aclose.assert_not_called()


class TestEnqueue:
    @pytest.mark.asyncio
    async def test_publishes_fields(self, queue, redis_client):
        message_id = await queue.enqueue(StreamJob(stream_id="s1", content_id="c1"))

        assert message_id == "1-0"
        kwargs = redis_client.xadd.call_args.kwargs
        assert kwargs["name"] == "stream_jobs"
        assert kwargs["fields"]["stream_id"] == "s1"
        assert kwargs["fields"]["content_id"] == "c1"
        assert "queued_at" in kwargs["fields"]
        assert kwargs["approximate"] is True


class TestReclaim:
    @pytest.mark.asyncio
    async def test_reclaimed_job_has_retry_count(self, queue, redis_client):
        redis_client.xautoclaim.return_value = [
            "0-0",
            [("msg-1", {"stream_id": "s1", "content_id": "c1"})],
            [],
        ]
        redis_client.xpending_range.return_value = [
            {"message_id": "msg-1", "consumer": "old", "times_delivered": 2}
        ]

        reclaimed = [job async for job in queue._reclaim_pending(count=10)]

        assert len(reclaimed) == 1
        assert reclaimed[0].message_id == "msg-1"
        assert reclaimed[0].retry_count == 1
        redis_client.xautoclaim.assert_awaited_once_with(
            name="stream_jobs",
            groupname="stream_workers",
            consumername="stream_worker_abc123",
            min_idle_time=1_000,
            start_id="0-0",
            count=10,
        )

    @pytest.mark.asyncio
    async def test_exhausted_job_dead_lettered(self, queue, redis_client):
        redis_client.xautoclaim.return_value = [
            "0-0",
            [("msg-1", {"stream_id": "s1", "content_id": "c1"})],
            [],
        ]
        redis_client.xpending_range.return_value = [
            {"message_id": "msg-1", "consumer": "old", "times_delivered": 4}
        ]

        reclaimed = [job async for job in queue._reclaim_pending(count=10)]

        assert reclaimed == []
        dlq_stream, dlq_fields = redis_client.xadd.call_args[0][:2]
        assert dlq_stream == "stream_jobs:dlq"
        assert dlq_fields["error"] == "max_retries_exceeded"
        assert dlq_fields["original_id"] == "msg-1"
        redis_client.xack.assert_awaited_once_with("stream_jobs", "stream_workers", "msg-1")

    @pytest.mark.asyncio
    async def test_xautoclaim_unavailable(self, queue, redis_client):
        redis_client.xautoclaim.side_effect = ResponseError("ERR unknown command 'XAUTOCLAIM'")

        assert [job async for job in queue._reclaim_pending(count=10)] == []


class TestConsume:
    @pytest.mark.asyncio
    async def test_pending_before_new(self, queue, redis_client):
        redis_client.xautoclaim.return_value = [
            "0-0", [("pending-1", {"stream_id": "s1", "content_id": "old"})], [],
        ]
        redis_client.xpending_range.return_value = [{"times_delivered": 1}]
        redis_client.xreadgroup.return_value = [
            ("stream_jobs", [("new-1", {"stream_id": "s1", "content_id": "new"})]),
        ]

        consumed = []
        async for job in queue.consume(count=10, block_ms=100):
            consumed.append(job)
            if len(consumed) == 2:
                break

        assert [j.content_id for j in consumed] == ["old", "new"]
        assert consumed[1].retry_count == 0

    @pytest.mark.asyncio
    async def test_malformed_message_dead_lettered(self, queue, redis_client):
        redis_client.xreadgroup.side_effect = [
            [("stream_jobs", [("bad-1", {"stream_id": "s1"})])],
            [("stream_jobs", [("good-1", {"stream_id": "s1", "content_id": "c1"})])],
        ]

        async for job in queue.consume(count=10, block_ms=100):
            break

        assert job.message_id == "good-1"
        dlq_fields = redis_client.xadd.call_args[0][1]
        assert dlq_fields["error"].startswith("parse_error")
        redis_client.xack.assert_awaited_once_with("stream_jobs", "stream_workers", "bad-1")

    @pytest.mark.asyncio
    async def test_requires_connect(self, redis_client):
        q = StreamJobQueue(redis_client=redis_client)
        with pytest.raises(RuntimeError):
            async for _ in q.consume():
                pass


class TestPendingCount:
    @pytest.mark.asyncio
    async def test_pending_count(self, queue, redis_client):
        redis_client.xpending.return_value = {"pending": 7}
        assert await queue.get_pending_count() == 7
