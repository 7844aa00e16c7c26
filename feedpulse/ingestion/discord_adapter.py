"""
Discord channel adapter.

Reads ``GET /channels/{id}/messages`` with a bot token. The bot must be a
member of the guild with the Read Message History permission. Identifier
is the channel snowflake id.
"""

import logging
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from feedpulse.ingestion.base_adapter import BaseAdapter, parse_iso_datetime
from feedpulse.ingestion.http_client import HTTPClient
from feedpulse.ingestion.schemas import ContentItem

logger = logging.getLogger(__name__)

DISCORD_API_BASE = "https://discord.com/api/v10"
MESSAGES_LIMIT = 50


class DiscordAdapter(BaseAdapter):
    """Messages from one Discord channel via the bot API."""

    def __init__(self, bot_token: str | None = None, **kwargs: Any):
        super().__init__(**kwargs)
        self._bot_token = bot_token

    @property
    def source_type(self) -> str:
        return "discord"

    def validate_config(self, identifier: str, config: dict[str, Any]) -> list[str]:
        problems = super().validate_config(identifier, config)
        if identifier and not identifier.strip().isdigit():
            problems.append(f"identifier must be a numeric channel id, got {identifier!r}")
        if not (config.get("bot_token") or self._bot_token):
            problems.append("no Discord bot token configured")
        return problems

    def _default_headers(self, config: dict[str, Any]) -> dict[str, str]:
        token = config.get("bot_token") or self._bot_token
        return {"Authorization": f"Bot {token}"}

    async def _fetch_raw(
        self,
        client: HTTPClient,
        identifier: str,
        config: dict[str, Any],
        since: datetime | None,
    ) -> AsyncIterator[dict[str, Any]]:
        await self._rate_limiter.acquire()
        messages = await client.get_json(
            f"{DISCORD_API_BASE}/channels/{identifier.strip()}/messages",
            params={"limit": MESSAGES_LIMIT},
        )
        for message in messages or []:
            yield message

    def _transform(
        self,
        raw: dict[str, Any],
        identifier: str,
        config: dict[str, Any],
    ) -> ContentItem | None:
        text = raw.get("content") or ""
        for embed in raw.get("embeds") or []:
            if embed.get("title"):
                text += f"\n[Embed: {embed['title']}]"
            if embed.get("description"):
                text += f"\n{embed['description']}"

        author = raw.get("author") or {}
        channel_id = raw.get("channel_id", identifier)
        return ContentItem(
            external_id=str(raw["id"]),
            raw_content=text.strip() or "[Attachment]",
            posted_at=parse_iso_datetime(raw.get("timestamp")),
            metadata={
                "message_id": str(raw["id"]),
                "channel_id": channel_id,
                "author": {
                    "id": author.get("id"),
                    "username": author.get("username"),
                    "bot": bool(author.get("bot")),
                },
                "has_attachments": bool(raw.get("attachments")),
                "has_embeds": bool(raw.get("embeds")),
            },
        )
