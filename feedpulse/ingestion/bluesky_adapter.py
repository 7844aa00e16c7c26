"""
Bluesky author feed adapter.

Uses the unauthenticated AppView endpoint ``app.bsky.feed.getAuthorFeed``.
Identifier is a handle (``alice.bsky.social``) or DID.
"""

import logging
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from feedpulse.ingestion.base_adapter import BaseAdapter, parse_iso_datetime
from feedpulse.ingestion.http_client import HTTPClient
from feedpulse.ingestion.schemas import ContentItem

logger = logging.getLogger(__name__)

BLUESKY_API_BASE = "https://public.api.bsky.app/xrpc"
FEED_LIMIT = 50


class BlueskyAdapter(BaseAdapter):
    """Posts from one Bluesky account."""

    @property
    def source_type(self) -> str:
        return "bluesky"

    def _default_headers(self, config: dict[str, Any]) -> dict[str, str]:
        return {"Accept": "application/json"}

    async def _fetch_raw(
        self,
        client: HTTPClient,
        identifier: str,
        config: dict[str, Any],
        since: datetime | None,
    ) -> AsyncIterator[dict[str, Any]]:
        await self._rate_limiter.acquire()
        data = await client.get_json(
            f"{BLUESKY_API_BASE}/app.bsky.feed.getAuthorFeed",
            params={"actor": identifier.lstrip("@"), "limit": FEED_LIMIT},
        )

        feed = (data or {}).get("feed")
        if not isinstance(feed, list):
            logger.warning("No feed returned for Bluesky actor %s", identifier)
            return

        for entry in feed:
            post = entry.get("post")
            if post:
                yield post

    def _transform(
        self,
        raw: dict[str, Any],
        identifier: str,
        config: dict[str, Any],
    ) -> ContentItem | None:
        record = raw.get("record") or {}
        text = record.get("text")
        if not text:
            return None

        author = raw.get("author") or {}
        handle = author.get("handle", identifier)
        rkey = raw["uri"].rsplit("/", 1)[-1]

        embed = record.get("embed") or {}
        external = embed.get("external")
        if external:
            text += f"\n\nLink: {external.get('uri')}"
        images = embed.get("images")
        if images:
            text += f"\n\n[{len(images)} image(s)]"
        if record.get("reply"):
            text = f"[Reply]\n{text}"

        return ContentItem(
            external_id=f"{handle}_{rkey}",
            raw_content=text,
            posted_at=parse_iso_datetime(record.get("createdAt")),
            metadata={
                "uri": raw["uri"],
                "cid": raw.get("cid"),
                "url": f"https://bsky.app/profile/{handle}/post/{rkey}",
                "author": {
                    "did": author.get("did"),
                    "handle": handle,
                    "display_name": author.get("displayName"),
                },
                "reply_count": raw.get("replyCount", 0),
                "repost_count": raw.get("repostCount", 0),
                "like_count": raw.get("likeCount", 0),
                "has_embed": bool(embed),
                "is_reply": bool(record.get("reply")),
            },
        )
