"""Notification channel implementations.

Provides an ABC for notification channels plus concrete implementations
for Telegram, Discord, Slack and generic webhooks. A CircuitBreaker
decorator wraps any channel to stop hammering a downstream that keeps
failing.

Every channel takes the recipient (chat id or webhook URL) first and falls
back to a per-channel key in ``config`` (user settings overlaid with the
stream's notification config). Channels never raise: failures are logged
and reported as ``False``.

Pattern: Decorator (CircuitBreaker wraps any NotificationChannel).
"""

import enum
import html
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

import httpx

from feedpulse.notifications.schemas import NotificationMessage

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
DISCORD_EMBED_COLOR = 5814783  # Discord blurple


class NotificationChannel(ABC):
    """Abstract base for notification delivery channels."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry name for this channel (e.g. 'telegram', 'slack')."""

    @abstractmethod
    async def send(
        self,
        recipient: str,
        message: NotificationMessage,
        config: dict[str, Any] | None = None,
    ) -> bool:
        """Deliver a message.

        Args:
            recipient: Channel-specific address; empty to use ``config``.
            message: Message to deliver.
            config: Per-user/per-stream overrides.

        Returns:
            True if delivery succeeded, False otherwise.
        """


class _HttpPostChannel(NotificationChannel):
    """Shared POST-and-check for channels that deliver with one HTTP call.

    Creates a new ``httpx.AsyncClient`` per call (short-lived, no pooling).
    """

    def __init__(self, timeout: float = 10.0) -> None:
        self._timeout = timeout

    async def _post(self, url: str, payload: dict[str, Any], label: str) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=payload)
                if resp.is_success:
                    return True
                logger.warning(
                    "%s returned %d: %s", label, resp.status_code, resp.text[:200],
                )
                return False
        except httpx.TimeoutException:
            logger.warning("%s timed out", label)
            return False
        except Exception as e:
            logger.warning("%s failed: %s", label, e)
            return False


class TelegramChannel(_HttpPostChannel):
    """Delivers via the Telegram Bot API ``sendMessage`` (HTML parse mode)."""

    def __init__(self, bot_token: str | None = None, timeout: float = 10.0) -> None:
        super().__init__(timeout)
        self._bot_token = bot_token

    @property
    def name(self) -> str:
        return "telegram"

    @staticmethod
    def format_message(message: NotificationMessage) -> str:
        text = ""
        if message.title:
            text += f"<b>{html.escape(message.title)}</b>\n\n"
        text += html.escape(message.content)
        if message.url:
            text += f'\n\n<a href="{html.escape(message.url, quote=True)}">View Source</a>'
        return text

    async def send(
        self,
        recipient: str,
        message: NotificationMessage,
        config: dict[str, Any] | None = None,
    ) -> bool:
        config = config or {}
        token = config.get("telegram_bot_token") or self._bot_token
        chat_id = recipient or config.get("telegram_chat_id")
        if not token:
            logger.error("Telegram bot token not configured")
            return False
        if not chat_id:
            logger.error("Telegram chat id not provided")
            return False

        payload = {
            "chat_id": chat_id,
            "text": self.format_message(message),
            "parse_mode": "HTML",
            "disable_web_page_preview": bool(config.get("disable_preview", False)),
        }
        return await self._post(
            f"{TELEGRAM_API_BASE}/bot{token}/sendMessage", payload, "Telegram sendMessage"
        )


class DiscordChannel(_HttpPostChannel):
    """Delivers to a Discord incoming webhook as a single embed."""

    @property
    def name(self) -> str:
        return "discord"

    @staticmethod
    def format_message(message: NotificationMessage) -> dict[str, Any]:
        embed: dict[str, Any] = {
            "title": message.title,
            "description": message.content,
            "color": DISCORD_EMBED_COLOR,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if message.url:
            embed["url"] = message.url
        source_id = message.metadata.get("source_id")
        if source_id:
            embed["footer"] = {"text": f"Source: {source_id}"}

        payload: dict[str, Any] = {"embeds": [embed]}
        if message.title:
            payload["content"] = f"**{message.title}**"
        return payload

    async def send(
        self,
        recipient: str,
        message: NotificationMessage,
        config: dict[str, Any] | None = None,
    ) -> bool:
        webhook_url = recipient or (config or {}).get("discord_webhook_url")
        if not webhook_url:
            logger.error("Discord webhook URL not provided")
            return False
        return await self._post(webhook_url, self.format_message(message), "Discord webhook")


class SlackChannel(_HttpPostChannel):
    """Delivers to a Slack incoming webhook using mrkdwn text."""

    @property
    def name(self) -> str:
        return "slack"

    @staticmethod
    def format_message(message: NotificationMessage) -> dict[str, Any]:
        text = ""
        if message.title:
            text += f"*{message.title}*\n\n"
        text += message.content
        if message.url:
            text += f"\n\n<{message.url}|View Source>"
        return {"text": text}

    async def send(
        self,
        recipient: str,
        message: NotificationMessage,
        config: dict[str, Any] | None = None,
    ) -> bool:
        webhook_url = recipient or (config or {}).get("slack_webhook_url")
        if not webhook_url:
            logger.error("Slack webhook URL not provided")
            return False
        return await self._post(webhook_url, self.format_message(message), "Slack webhook")


class WebhookChannel(_HttpPostChannel):
    """Delivers the message as JSON POST to an arbitrary HTTP endpoint."""

    @property
    def name(self) -> str:
        return "webhook"

    async def send(
        self,
        recipient: str,
        message: NotificationMessage,
        config: dict[str, Any] | None = None,
    ) -> bool:
        webhook_url = recipient or (config or {}).get("generic_webhook_url")
        if not webhook_url:
            logger.error("Generic webhook URL not provided")
            return False
        payload = {
            **message.to_dict(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        return await self._post(webhook_url, payload, "Webhook")


class CircuitState(enum.Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker(NotificationChannel):
    """Wraps a NotificationChannel with circuit breaker protection.

    State machine: CLOSED → OPEN → HALF_OPEN → CLOSED.

    - CLOSED: All sends pass through. Consecutive failures tracked.
    - OPEN: Sends rejected immediately. After recovery_timeout, moves
      to HALF_OPEN.
    - HALF_OPEN: One trial send allowed. Success → CLOSED, failure → OPEN.
    """

    def __init__(
        self,
        channel: NotificationChannel,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
    ) -> None:
        self._channel = channel
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._last_failure_time: float = 0.0

    @property
    def name(self) -> str:
        return self._channel.name

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def wrapped(self) -> NotificationChannel:
        return self._channel

    async def send(
        self,
        recipient: str,
        message: NotificationMessage,
        config: dict[str, Any] | None = None,
    ) -> bool:
        if self._state == CircuitState.OPEN:
            if time.monotonic() - self._last_failure_time < self._recovery_timeout:
                logger.debug("Circuit breaker %s: OPEN, rejecting send", self.name)
                return False
            self._state = CircuitState.HALF_OPEN
            logger.info("Circuit breaker %s: OPEN → HALF_OPEN (recovery trial)", self.name)

        success = await self._channel.send(recipient, message, config)
        if success:
            self._record_success()
        else:
            self._record_failure()
        return success

    def _record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            logger.info("Circuit breaker %s: HALF_OPEN → CLOSED (trial succeeded)", self.name)
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0

    def _record_failure(self) -> None:
        self._consecutive_failures += 1
        self._last_failure_time = time.monotonic()

        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning("Circuit breaker %s: HALF_OPEN → OPEN (trial failed)", self.name)
        elif self._consecutive_failures >= self._failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker %s: CLOSED → OPEN after %d failures",
                self.name, self._consecutive_failures,
            )
