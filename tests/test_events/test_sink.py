"""Tests for the real-time event sinks."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from feedpulse.events.sink import NullEventSink, RedisEventSink


class TestRedisEventSink:
    @pytest.mark.asyncio
    async def test_publishes_json(self):
        redis_client = AsyncMock()
        sink = RedisEventSink(redis_client, channel="events")

        ok = await sink.emit("notification_sent", {"stream_id": "s1", "channel": "slack"})

        assert ok is True
        channel, raw = redis_client.publish.call_args.args
        assert channel == "events"
        assert json.loads(raw) == {
            "type": "notification_sent",
            "data": {"stream_id": "s1", "channel": "slack"},
        }

    @pytest.mark.asyncio
    async def test_non_json_values_stringified(self):
        redis_client = AsyncMock()
        when = datetime(2025, 1, 1, tzinfo=timezone.utc)

        await RedisEventSink(redis_client).emit("log", {"created_at": when})

        raw = redis_client.publish.call_args.args[1]
        assert json.loads(raw)["data"]["created_at"] == str(when)

    @pytest.mark.asyncio
    async def test_publish_failure_returns_false(self):
        redis_client = AsyncMock()
        redis_client.publish.side_effect = ConnectionError("down")

        assert await RedisEventSink(redis_client).emit("log", {}) is False

    def test_default_channel(self):
        assert RedisEventSink(AsyncMock()).channel == "feedpulse:events"


class TestNullEventSink:
    @pytest.mark.asyncio
    async def test_discards(self):
        assert await NullEventSink().emit("log", {"a": 1}) is False
