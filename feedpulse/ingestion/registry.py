"""
Adapter registry keyed by source type tag.

Built once per process (see ``feedpulse.app.build_app_context``) and passed
to the polling scheduler. Lookups of an unknown tag raise
UnknownSourceTypeError so the scheduler can skip that source.
"""

import logging
from datetime import datetime
from typing import Any

from feedpulse.config.settings import Settings
from feedpulse.errors import UnknownSourceTypeError
from feedpulse.ingestion.base_adapter import BaseAdapter
from feedpulse.ingestion.bluesky_adapter import BlueskyAdapter
from feedpulse.ingestion.discord_adapter import DiscordAdapter
from feedpulse.ingestion.github_adapter import GitHubAdapter
from feedpulse.ingestion.http_client import RetryConfig
from feedpulse.ingestion.mastodon_adapter import MastodonAdapter
from feedpulse.ingestion.newsnow_adapter import NewsNowAdapter
from feedpulse.ingestion.reddit_adapter import RedditAdapter
from feedpulse.ingestion.rss_adapter import RSSAdapter
from feedpulse.ingestion.schemas import ContentItem
from feedpulse.ingestion.telegram_adapter import TelegramAdapter
from feedpulse.ingestion.x_adapter import XAdapter

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Maps source type tags to adapter instances."""

    def __init__(self, adapters: list[BaseAdapter] | None = None):
        self._adapters: dict[str, BaseAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: BaseAdapter) -> None:
        """Register an adapter under its source_type, replacing any previous one."""
        tag = adapter.source_type
        if tag in self._adapters:
            logger.warning("Replacing adapter for source type %r", tag)
        self._adapters[tag] = adapter

    def get(self, source_type: str) -> BaseAdapter:
        adapter = self._adapters.get(source_type)
        if adapter is None:
            raise UnknownSourceTypeError(source_type)
        return adapter

    async def fetch(
        self,
        source_type: str,
        identifier: str,
        config: dict[str, Any] | None = None,
        since: datetime | None = None,
    ) -> list[ContentItem]:
        """Fetch through the adapter for ``source_type``."""
        return await self.get(source_type).fetch(identifier, config, since)

    def available_types(self) -> list[str]:
        return sorted(self._adapters)

    def __contains__(self, source_type: str) -> bool:
        return source_type in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)


def create_default_registry(settings: Settings) -> AdapterRegistry:
    """Registry with every shipped adapter, configured from settings."""
    common: dict[str, Any] = {
        "rate_limit": settings.adapter_rate_limit,
        "timeout": settings.adapter_timeout_seconds,
        "retry_config": RetryConfig(
            max_retries=settings.max_http_retries,
            max_backoff_seconds=settings.max_backoff_seconds,
        ),
    }
    discord_token = (
        settings.discord_bot_token.get_secret_value() if settings.discord_bot_token else None
    )

    return AdapterRegistry(
        [
            RSSAdapter(**common),
            GitHubAdapter(**common),
            MastodonAdapter(**common),
            BlueskyAdapter(**common),
            NewsNowAdapter(base_url=settings.newsnow_base_url, **common),
            XAdapter(bearer_tokens=settings.x_bearer_tokens, **common),
            RedditAdapter(user_agent=settings.reddit_user_agent, **common),
            TelegramAdapter(**common),
            DiscordAdapter(bot_token=discord_token, **common),
        ]
    )
