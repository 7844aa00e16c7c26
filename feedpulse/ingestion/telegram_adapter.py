"""
Telegram public channel adapter.

Scrapes the web preview at ``https://t.me/s/{channel}``, which lists the
latest ~20 posts of any public channel without a bot token or MTProto
session. Identifier is the channel username (``@`` optional).
"""

import logging
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from bs4 import BeautifulSoup, Tag

from feedpulse.ingestion.base_adapter import BaseAdapter, parse_iso_datetime
from feedpulse.ingestion.http_client import HTTPClient
from feedpulse.ingestion.schemas import ContentItem

logger = logging.getLogger(__name__)

TELEGRAM_PREVIEW_BASE = "https://t.me/s"


class TelegramAdapter(BaseAdapter):
    """Posts from a public Telegram channel preview page."""

    @property
    def source_type(self) -> str:
        return "telegram"

    def _default_headers(self, config: dict[str, Any]) -> dict[str, str]:
        return {"Accept": "text/html,application/xhtml+xml"}

    async def _fetch_raw(
        self,
        client: HTTPClient,
        identifier: str,
        config: dict[str, Any],
        since: datetime | None,
    ) -> AsyncIterator[dict[str, Any]]:
        channel = identifier.strip().removeprefix("@")

        await self._rate_limiter.acquire()
        response = await client.get(f"{TELEGRAM_PREVIEW_BASE}/{channel}")

        soup = BeautifulSoup(response.text, "html.parser")
        messages = soup.select("div.tgme_widget_message[data-post]")
        if not messages:
            logger.warning("No posts found on Telegram preview for %s", channel)
            return

        for node in messages:
            yield {"channel": channel, "node": node}

    def _transform(
        self,
        raw: dict[str, Any],
        identifier: str,
        config: dict[str, Any],
    ) -> ContentItem | None:
        node: Tag = raw["node"]
        post_ref = node["data-post"]

        text_node = node.select_one("div.tgme_widget_message_text")
        text = text_node.get_text("\n").strip() if text_node else ""

        time_node = node.select_one("a.tgme_widget_message_date time[datetime]")
        posted_at = parse_iso_datetime(time_node["datetime"]) if time_node else None

        views_node = node.select_one("span.tgme_widget_message_views")
        return ContentItem(
            external_id=post_ref,
            raw_content=text or "[Media without caption]",
            posted_at=posted_at,
            metadata={
                "post_id": post_ref.rsplit("/", 1)[-1],
                "channel": raw["channel"],
                "url": f"https://t.me/{post_ref}",
                "views": views_node.get_text(strip=True) if views_node else None,
                "has_photo": node.select_one("a.tgme_widget_message_photo_wrap") is not None,
                "has_video": node.select_one("video") is not None,
            },
        )
