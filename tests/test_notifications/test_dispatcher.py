"""Tests for NotificationDispatcher."""

from unittest.mock import AsyncMock, patch

import pytest

from feedpulse.errors import ChannelNotAvailableError
from feedpulse.notifications.channels import (
    CircuitBreaker,
    NotificationChannel,
    TelegramChannel,
)
from feedpulse.notifications.dispatcher import (
    NotificationConfig,
    NotificationDispatcher,
    build_channels,
    create_dispatcher,
)
from feedpulse.notifications.schemas import NotificationMessage


@pytest.fixture
def message() -> NotificationMessage:
    return NotificationMessage(title="t", content="c")


def _channel(name: str = "webhook") -> AsyncMock:
    ch = AsyncMock(spec=NotificationChannel)
    ch.name = name
    ch.send.return_value = True
    return ch


class TestRouting:
    @pytest.mark.asyncio
    async def test_routes_by_name(self, message):
        slack, webhook = _channel("slack"), _channel("webhook")
        dispatcher = NotificationDispatcher([slack, webhook])

        result = await dispatcher.send("slack", "https://hooks.slack.test/x", message, {"a": 1})

        assert result is True
        slack.send.assert_awaited_once_with("https://hooks.slack.test/x", message, {"a": 1})
        webhook.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_channel_returns_false(self, message):
        dispatcher = NotificationDispatcher([_channel("slack")])

        assert await dispatcher.send("telegram", "123", message) is False

    def test_get_channel_unknown_raises(self):
        with pytest.raises(ChannelNotAvailableError):
            NotificationDispatcher([]).get_channel("sms")

    def test_wraps_channels_in_circuit_breaker(self):
        dispatcher = NotificationDispatcher([_channel("slack")])
        assert isinstance(dispatcher.channels["slack"], CircuitBreaker)

    def test_does_not_double_wrap(self):
        breaker = CircuitBreaker(_channel("slack"))
        dispatcher = NotificationDispatcher([breaker])
        assert dispatcher.channels["slack"] is breaker

    def test_available_channels_sorted(self):
        dispatcher = NotificationDispatcher([_channel("webhook"), _channel("discord")])
        assert dispatcher.available_channels() == ["discord", "webhook"]


class TestRetryLogic:
    @pytest.mark.asyncio
    async def test_succeeds_on_second_attempt(self, message):
        ch = _channel()
        ch.send.side_effect = [False, True]
        config = NotificationConfig(retry_max_attempts=3, retry_delays=[1.0, 5.0])
        dispatcher = NotificationDispatcher([ch], config)

        with patch(
            "feedpulse.notifications.dispatcher.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            result = await dispatcher.send("webhook", "https://example.com", message)

        assert result is True
        assert ch.send.call_count == 2
        mock_sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_all_retries_exhausted(self, message):
        ch = _channel()
        ch.send.return_value = False
        config = NotificationConfig(retry_max_attempts=3, retry_delays=[1.0, 5.0])
        dispatcher = NotificationDispatcher([ch], config)

        with patch(
            "feedpulse.notifications.dispatcher.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            result = await dispatcher.send("webhook", "https://example.com", message)

        assert result is False
        assert ch.send.call_count == 3
        assert [c.args[0] for c in mock_sleep.await_args_list] == [1.0, 5.0]

    @pytest.mark.asyncio
    async def test_channel_exception_is_retried(self, message):
        ch = _channel()
        ch.send.side_effect = [RuntimeError("boom"), True]
        config = NotificationConfig(retry_max_attempts=2, retry_delays=[0.0])
        dispatcher = NotificationDispatcher([ch], config)

        with patch("feedpulse.notifications.dispatcher.asyncio.sleep", new_callable=AsyncMock):
            assert await dispatcher.send("webhook", "https://example.com", message) is True


class TestBuildChannels:
    def test_without_telegram_token(self):
        names = [ch.name for ch in build_channels(NotificationConfig(telegram_bot_token=None))]
        assert names == ["discord", "slack", "webhook"]

    def test_with_telegram_token(self):
        channels = build_channels(NotificationConfig(telegram_bot_token="123:abc"))

        telegram = [ch for ch in channels if ch.name == "telegram"]
        assert len(telegram) == 1
        assert isinstance(telegram[0], TelegramChannel)

    def test_create_dispatcher(self):
        dispatcher = create_dispatcher(
            NotificationConfig(telegram_bot_token="123:abc", http_timeout_seconds=5.0)
        )
        assert dispatcher.available_channels() == ["discord", "slack", "telegram", "webhook"]
