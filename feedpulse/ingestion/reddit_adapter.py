"""
Reddit subreddit adapter.

Reads the public JSON listing (``/r/{sub}/{sort}.json``), so no OAuth app
is needed. Handles:
- Sort order and page size from the source config
- Removed posts are dropped
- Link posts get their target URL appended to the content
"""

import logging
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any

from feedpulse.ingestion.base_adapter import BaseAdapter
from feedpulse.ingestion.http_client import HTTPClient
from feedpulse.ingestion.schemas import ContentItem

logger = logging.getLogger(__name__)

REDDIT_BASE = "https://www.reddit.com"
VALID_SORTS = ("hot", "new", "top", "rising")
DEFAULT_SORT = "new"
DEFAULT_LIMIT = 25


class RedditAdapter(BaseAdapter):
    """
    Posts from one subreddit.

    Config keys:
        sort: One of hot/new/top/rising (default "new")
        limit: Posts per request, 1-100 (default 25)
    """

    def __init__(self, user_agent: str = "feedpulse/0.1.0", **kwargs: Any):
        super().__init__(**kwargs)
        self._user_agent = user_agent

    @property
    def source_type(self) -> str:
        return "reddit"

    def validate_config(self, identifier: str, config: dict[str, Any]) -> list[str]:
        problems = super().validate_config(identifier, config)
        sort = config.get("sort", DEFAULT_SORT)
        if sort not in VALID_SORTS:
            problems.append(f"sort must be one of {', '.join(VALID_SORTS)}, got {sort!r}")
        limit = config.get("limit", DEFAULT_LIMIT)
        if not isinstance(limit, int) or not 1 <= limit <= 100:
            problems.append(f"limit must be an integer in 1..100, got {limit!r}")
        return problems

    def _default_headers(self, config: dict[str, Any]) -> dict[str, str]:
        # Reddit throttles generic user agents aggressively
        return {"User-Agent": self._user_agent}

    async def _fetch_raw(
        self,
        client: HTTPClient,
        identifier: str,
        config: dict[str, Any],
        since: datetime | None,
    ) -> AsyncIterator[dict[str, Any]]:
        subreddit = identifier.strip().removeprefix("r/").strip("/")
        sort = config.get("sort", DEFAULT_SORT)

        await self._rate_limiter.acquire()
        data = await client.get_json(
            f"{REDDIT_BASE}/r/{subreddit}/{sort}.json",
            params={"limit": config.get("limit", DEFAULT_LIMIT), "raw_json": 1},
        )

        children = (data or {}).get("data", {}).get("children", [])
        logger.debug("Fetched %d posts from r/%s", len(children), subreddit)
        for child in children:
            post = child.get("data")
            if post:
                yield post

    def _transform(
        self,
        raw: dict[str, Any],
        identifier: str,
        config: dict[str, Any],
    ) -> ContentItem | None:
        if raw.get("removed_by_category"):
            return None

        content = raw.get("title", "")
        if raw.get("selftext"):
            content += f"\n\n{raw['selftext']}"
        if not raw.get("is_self") and raw.get("url"):
            content += f"\n\nLink: {raw['url']}"

        created_utc = raw.get("created_utc")
        posted_at = (
            datetime.fromtimestamp(created_utc, tz=timezone.utc) if created_utc else None
        )
        permalink = raw.get("permalink", "")

        return ContentItem(
            external_id=raw["id"],
            raw_content=content,
            posted_at=posted_at,
            metadata={
                "post_id": raw["id"],
                "title": raw.get("title"),
                "subreddit": raw.get("subreddit"),
                "author": raw.get("author"),
                "score": raw.get("score", 0),
                "num_comments": raw.get("num_comments", 0),
                "url": f"https://reddit.com{permalink}" if permalink else raw.get("url"),
                "link": raw.get("url"),
                "flair": raw.get("link_flair_text"),
                "is_self": bool(raw.get("is_self")),
            },
        )
