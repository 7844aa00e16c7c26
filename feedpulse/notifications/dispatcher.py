"""Notification dispatcher routing messages to named channels.

Channels are registered once at startup; a channel whose global
credentials are missing is simply not registered, and sends to it return
False. Each registered channel is wrapped in a CircuitBreaker and failed
sends are retried with configured delays.

Pattern: Orchestrator, delegates to stateless channels.
"""

import asyncio
import logging
from typing import Any

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from feedpulse.errors import ChannelNotAvailableError
from feedpulse.notifications.channels import (
    CircuitBreaker,
    DiscordChannel,
    NotificationChannel,
    SlackChannel,
    TelegramChannel,
    WebhookChannel,
)
from feedpulse.notifications.schemas import NotificationMessage
from feedpulse.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


class NotificationConfig(BaseSettings):
    """Configuration for notification dispatch."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFICATIONS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    telegram_bot_token: SecretStr | None = Field(
        default=None,
        description="Bot token; the telegram channel is registered only when set",
    )
    http_timeout_seconds: float = Field(
        default=10.0,
        ge=1.0,
        le=60.0,
        description="Per-request timeout for channel HTTP calls",
    )
    retry_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum send attempts per message",
    )
    retry_delays: list[float] = Field(
        default=[1.0, 5.0],
        description="Delay in seconds before each retry",
    )
    circuit_breaker_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures before circuit opens",
    )
    circuit_breaker_recovery_seconds: float = Field(
        default=60.0,
        ge=5.0,
        description="Seconds before circuit breaker tries a recovery call",
    )


class NotificationDispatcher:
    """Routes a message to one channel by name.

    Usage:
        dispatcher = NotificationDispatcher([SlackChannel(), WebhookChannel()])
        ok = await dispatcher.send("slack", webhook_url, message, config)
    """

    def __init__(
        self,
        channels: list[NotificationChannel],
        config: NotificationConfig | None = None,
    ) -> None:
        self._config = config or NotificationConfig()
        self._channels: dict[str, CircuitBreaker] = {}
        for ch in channels:
            self.register(ch)

    def register(self, channel: NotificationChannel) -> None:
        if not isinstance(channel, CircuitBreaker):
            channel = CircuitBreaker(
                channel=channel,
                failure_threshold=self._config.circuit_breaker_threshold,
                recovery_timeout=self._config.circuit_breaker_recovery_seconds,
            )
        if channel.name in self._channels:
            logger.warning("Replacing notification channel %r", channel.name)
        self._channels[channel.name] = channel
        logger.info("Registered notification channel: %s", channel.name)

    @property
    def channels(self) -> dict[str, CircuitBreaker]:
        """Wrapped channels by name (for inspection/testing)."""
        return self._channels

    def available_channels(self) -> list[str]:
        return sorted(self._channels)

    def get_channel(self, channel_name: str) -> CircuitBreaker:
        channel = self._channels.get(channel_name)
        if channel is None:
            raise ChannelNotAvailableError(channel_name)
        return channel

    async def send(
        self,
        channel_name: str,
        recipient: str,
        message: NotificationMessage,
        config: dict[str, Any] | None = None,
    ) -> bool:
        """Deliver ``message`` through ``channel_name``.

        Returns False (never raises) when the channel is not registered or
        every attempt failed.
        """
        metrics = get_metrics()
        try:
            channel = self.get_channel(channel_name)
        except ChannelNotAvailableError:
            logger.warning("Notification channel %s not found or not ready", channel_name)
            metrics.record_notification(channel_name, "unavailable")
            return False

        success = await self._send_with_retry(channel, recipient, message, config)
        metrics.record_notification(channel_name, "success" if success else "failure")
        return success

    async def _send_with_retry(
        self,
        channel: NotificationChannel,
        recipient: str,
        message: NotificationMessage,
        config: dict[str, Any] | None,
    ) -> bool:
        delays = self._config.retry_delays or [0.0]
        max_attempts = self._config.retry_max_attempts

        for attempt in range(max_attempts):
            try:
                if await channel.send(recipient, message, config):
                    if attempt > 0:
                        logger.info(
                            "Message delivered to %s on attempt %d",
                            channel.name, attempt + 1,
                        )
                    return True
            except Exception as e:
                logger.warning(
                    "Channel %s send error (attempt %d): %s",
                    channel.name, attempt + 1, e,
                )

            if attempt < max_attempts - 1:
                delay = delays[attempt] if attempt < len(delays) else delays[-1]
                await asyncio.sleep(delay)

        logger.warning(
            "All %d attempts exhausted on channel %s", max_attempts, channel.name,
        )
        return False


def build_channels(config: NotificationConfig) -> list[NotificationChannel]:
    """Channels with usable credentials.

    Webhook-style channels receive their URL per message and are always
    available; telegram needs a bot token.
    """
    timeout = config.http_timeout_seconds
    channels: list[NotificationChannel] = [
        DiscordChannel(timeout=timeout),
        SlackChannel(timeout=timeout),
        WebhookChannel(timeout=timeout),
    ]
    if config.telegram_bot_token is not None:
        channels.append(
            TelegramChannel(
                bot_token=config.telegram_bot_token.get_secret_value(),
                timeout=timeout,
            )
        )
    else:
        logger.warning("NOTIFICATIONS_TELEGRAM_BOT_TOKEN not set; telegram channel disabled")
    return channels


def create_dispatcher(config: NotificationConfig | None = None) -> NotificationDispatcher:
    config = config or NotificationConfig()
    return NotificationDispatcher(build_channels(config), config)
