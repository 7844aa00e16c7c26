"""
Notification delivery.

Components:
- NotificationMessage: Channel-independent rendered message
- NotificationChannel: ABC with Telegram, Discord, Slack and webhook implementations
- CircuitBreaker: Channel decorator that sheds load from a failing backend
- NotificationDispatcher: Name-based routing with retry
"""

from feedpulse.notifications.channels import (
    CircuitBreaker,
    DiscordChannel,
    NotificationChannel,
    SlackChannel,
    TelegramChannel,
    WebhookChannel,
)
from feedpulse.notifications.dispatcher import (
    NotificationConfig,
    NotificationDispatcher,
    create_dispatcher,
)
from feedpulse.notifications.schemas import NotificationMessage

__all__ = [
    "CircuitBreaker",
    "DiscordChannel",
    "NotificationChannel",
    "NotificationConfig",
    "NotificationDispatcher",
    "NotificationMessage",
    "SlackChannel",
    "TelegramChannel",
    "WebhookChannel",
    "create_dispatcher",
]
