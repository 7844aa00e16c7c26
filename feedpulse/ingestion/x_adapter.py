"""
X (Twitter) API v2 adapter.

Requires at least one bearer token, from ``X_BEARER_TOKENS`` (comma
separated, rotated per request) or ``bearer_token`` in the source config.

Identifier meaning depends on ``config["type"]``:
- ``user_timeline`` (default): username, ``@`` optional
- ``user_mentions``: username
- ``search``: raw search query
- ``hashtag``: tag, ``#`` optional
"""

import logging
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

from feedpulse.ingestion.base_adapter import BaseAdapter, parse_iso_datetime
from feedpulse.ingestion.http_client import APIKeyRotator, HTTPClient
from feedpulse.ingestion.schemas import ContentItem

logger = logging.getLogger(__name__)

X_API_BASE = "https://api.twitter.com/2"
TWEET_FIELDS = "created_at,author_id,public_metrics,entities"
FETCH_TYPES = ("user_timeline", "user_mentions", "search", "hashtag")
DEFAULT_MAX_RESULTS = 10
# search/recent rejects fewer than 10 results; 100 is the API ceiling
MIN_RESULTS, MAX_RESULTS = 10, 100


class XAdapter(BaseAdapter):
    """Tweets for a user timeline, mentions, search or hashtag."""

    def __init__(self, bearer_tokens: str | None = None, **kwargs: Any):
        super().__init__(**kwargs)
        self._rotator = APIKeyRotator.from_env_var(bearer_tokens)
        if self._rotator is None:
            logger.warning("X bearer token not configured; x sources need config.bearer_token")

    @property
    def source_type(self) -> str:
        return "x"

    def validate_config(self, identifier: str, config: dict[str, Any]) -> list[str]:
        problems = super().validate_config(identifier, config)
        fetch_type = config.get("type", "user_timeline")
        if fetch_type not in FETCH_TYPES:
            problems.append(f"type must be one of {', '.join(FETCH_TYPES)}, got {fetch_type!r}")
        if self._rotator is None and not config.get("bearer_token"):
            problems.append("no X bearer token configured")
        return problems

    def _token_rotator(self, config: dict[str, Any]) -> APIKeyRotator:
        if config.get("bearer_token"):
            return APIKeyRotator(keys=[config["bearer_token"]])
        assert self._rotator is not None
        return self._rotator

    async def _fetch_raw(
        self,
        client: HTTPClient,
        identifier: str,
        config: dict[str, Any],
        since: datetime | None,
    ) -> AsyncIterator[dict[str, Any]]:
        rotator = self._token_rotator(config)
        fetch_type = config.get("type", "user_timeline")
        max_results = max(
            MIN_RESULTS, min(int(config.get("max_results", DEFAULT_MAX_RESULTS)), MAX_RESULTS)
        )
        params = {"max_results": max_results, "tweet.fields": TWEET_FIELDS}

        if fetch_type in ("search", "hashtag"):
            query = identifier
            if fetch_type == "hashtag" and not identifier.startswith("#"):
                query = f"#{identifier}"
            url = f"{X_API_BASE}/tweets/search/recent"
            params["query"] = query
        else:
            username = identifier.removeprefix("@")
            await self._rate_limiter.acquire()
            user = await client.get_json(
                f"{X_API_BASE}/users/by/username/{username}", api_key_rotator=rotator
            )
            user_id = (user or {}).get("data", {}).get("id")
            if not user_id:
                logger.warning("X user not found: %s", username)
                return
            endpoint = "tweets" if fetch_type == "user_timeline" else "mentions"
            url = f"{X_API_BASE}/users/{user_id}/{endpoint}"

        await self._rate_limiter.acquire()
        data = await client.get_json(url, params=params, api_key_rotator=rotator)
        for tweet in (data or {}).get("data") or []:
            yield tweet

    def _transform(
        self,
        raw: dict[str, Any],
        identifier: str,
        config: dict[str, Any],
    ) -> ContentItem | None:
        text = raw.get("text")
        if not text:
            return None

        tweet_id = str(raw["id"])
        return ContentItem(
            external_id=tweet_id,
            raw_content=text,
            posted_at=parse_iso_datetime(raw.get("created_at")),
            metadata={
                "tweet_id": tweet_id,
                "author_id": raw.get("author_id"),
                "url": f"https://x.com/i/status/{tweet_id}",
                "public_metrics": raw.get("public_metrics") or {},
                "entities": raw.get("entities") or {},
                "fetch_type": config.get("type", "user_timeline"),
            },
        )
