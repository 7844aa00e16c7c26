"""
Mastodon account adapter.

Identifier formats:
- ``instance:accountId``   e.g. ``mastodon.social:109302``
- ``instance:@username``   resolved via /api/v1/accounts/lookup first

Boosts are unwrapped to the boosted status and prefixed with the original
author; content warnings are kept as a ``[CW: ...]`` prefix.
"""

import logging
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from bs4 import BeautifulSoup

from feedpulse.ingestion.base_adapter import BaseAdapter, parse_iso_datetime
from feedpulse.ingestion.http_client import HTTPClient
from feedpulse.ingestion.schemas import ContentItem

logger = logging.getLogger(__name__)

STATUSES_LIMIT = 40


def status_text(html_content: str | None) -> str:
    """Plain text of a status body, keeping line and paragraph breaks."""
    if not html_content:
        return ""
    soup = BeautifulSoup(html_content, "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    for paragraph in soup.find_all("p"):
        paragraph.append("\n\n")
    return soup.get_text().strip()


class MastodonAdapter(BaseAdapter):
    """Statuses posted or boosted by one Mastodon account."""

    @property
    def source_type(self) -> str:
        return "mastodon"

    def validate_config(self, identifier: str, config: dict[str, Any]) -> list[str]:
        problems = super().validate_config(identifier, config)
        if problems:
            return problems
        instance, _, account = identifier.partition(":")
        if not instance or not account:
            return [f"identifier must be instance:accountId or instance:@user, got {identifier!r}"]
        return []

    async def _fetch_raw(
        self,
        client: HTTPClient,
        identifier: str,
        config: dict[str, Any],
        since: datetime | None,
    ) -> AsyncIterator[dict[str, Any]]:
        instance, _, account = identifier.partition(":")
        base = f"https://{instance}/api/v1"

        account_id = account
        if account.startswith("@"):
            await self._rate_limiter.acquire()
            profile = await client.get_json(
                f"{base}/accounts/lookup", params={"acct": account[1:]}
            )
            account_id = str(profile["id"])

        await self._rate_limiter.acquire()
        statuses = await client.get_json(
            f"{base}/accounts/{account_id}/statuses",
            params={"limit": STATUSES_LIMIT, "exclude_replies": "false"},
        )
        for status in statuses or []:
            yield {"instance": instance, "status": status}

    def _transform(
        self,
        raw: dict[str, Any],
        identifier: str,
        config: dict[str, Any],
    ) -> ContentItem | None:
        status = raw["status"]
        boosted = status.get("reblog")
        actual = boosted or status

        text = status_text(actual.get("content"))
        if boosted:
            acct = (actual.get("account") or {}).get("acct", "unknown")
            text = f"[Boosted from @{acct}]\n\n{text}"
        if actual.get("spoiler_text"):
            text = f"[CW: {actual['spoiler_text']}]\n\n{text}"

        account = status.get("account") or {}
        return ContentItem(
            external_id=str(status["id"]),
            raw_content=text or "[Media only]",
            posted_at=parse_iso_datetime(status.get("created_at")),
            metadata={
                "status_id": str(status["id"]),
                "account": {
                    "id": account.get("id"),
                    "username": account.get("username"),
                    "acct": account.get("acct"),
                    "display_name": account.get("display_name"),
                },
                "url": status.get("url") or actual.get("url"),
                "reblogs_count": status.get("reblogs_count", 0),
                "favourites_count": status.get("favourites_count", 0),
                "is_reblog": boosted is not None,
                "has_media": bool(actual.get("media_attachments")),
                "instance": raw["instance"],
            },
        )
