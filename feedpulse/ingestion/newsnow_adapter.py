"""
NewsNow aggregator adapter.

Identifier is a NewsNow channel id (``weibo``, ``zhihu``, ``hackernews``...).
NewsNow exposes no item timestamps, so every item passes the watermark and
repeat fetches are absorbed by content de-duplication downstream.
"""

import logging
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any
from urllib.parse import quote

from feedpulse.ingestion.base_adapter import BaseAdapter, stable_hash
from feedpulse.ingestion.http_client import HTTPClient
from feedpulse.ingestion.schemas import ContentItem

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://newsnow.busiyi.world"


class NewsNowAdapter(BaseAdapter):
    """Headline lists from a NewsNow deployment."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, **kwargs: Any):
        super().__init__(**kwargs)
        self._base_url = base_url.rstrip("/")

    @property
    def source_type(self) -> str:
        return "newsnow"

    def _default_headers(self, config: dict[str, Any]) -> dict[str, str]:
        return {
            "Accept": "application/json, text/plain, */*",
            "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
            "Cache-Control": "no-cache",
        }

    async def _fetch_raw(
        self,
        client: HTTPClient,
        identifier: str,
        config: dict[str, Any],
        since: datetime | None,
    ) -> AsyncIterator[dict[str, Any]]:
        await self._rate_limiter.acquire()
        # `latest` is a bare flag with no value
        data = await client.get_json(
            f"{self._base_url}/api/s?id={quote(identifier)}&latest"
        )

        items = (data or {}).get("items")
        if not isinstance(items, list):
            logger.warning("No items in NewsNow feed %s", identifier)
            return

        for item in items:
            yield item

    def _transform(
        self,
        raw: dict[str, Any],
        identifier: str,
        config: dict[str, Any],
    ) -> ContentItem | None:
        title = raw.get("title")
        if not isinstance(title, str) or not title.strip():
            return None
        title = title.strip()

        external_id = raw.get("url") or raw.get("mobileUrl") or f"{identifier}-{stable_hash(title)}"
        return ContentItem(
            external_id=external_id,
            raw_content=title,
            posted_at=None,
            metadata={
                "title": title,
                "url": raw.get("url"),
                "mobile_url": raw.get("mobileUrl"),
                "extra": raw.get("extra"),
                "channel": identifier,
            },
        )
