"""
Base adapter interface and shared functionality for source adapters.

Each adapter implements ``_fetch_raw`` (platform requests) and
``_transform`` (raw payload -> ContentItem). The base class provides:
- The fail-soft ``fetch`` contract: never raises, returns [] on failure
- Watermark filtering on native timestamps
- Rate limiting and per-run statistics
- Failure reporting through logs and the adapter error metric
"""

import asyncio
import hashlib
import html
import logging
import re
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from bs4 import BeautifulSoup

from feedpulse.ingestion.http_client import (
    HTTPClient,
    HTTPClientError,
    RateLimitError,
    RetryConfig,
)
from feedpulse.ingestion.schemas import ContentItem
from feedpulse.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


@dataclass
class RateLimiter:
    """
    Simple token bucket rate limiter.

    Allows `rate` requests per minute with burst capacity.
    """

    rate: int  # requests per minute
    _tokens: float = field(init=False)
    _last_update: float = field(init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self) -> None:
        self._tokens = float(self.rate)
        self._last_update = time.monotonic()

    async def acquire(self) -> None:
        """Wait until a token is available, then consume it."""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_update
            self._last_update = now

            self._tokens = min(
                float(self.rate),
                self._tokens + elapsed * (self.rate / 60.0),
            )

            if self._tokens < 1:
                wait_time = (1 - self._tokens) * 60.0 / self.rate
                logger.debug("Rate limited, waiting %.2fs", wait_time)
                await asyncio.sleep(wait_time)
                self._tokens = 0
            else:
                self._tokens -= 1


@dataclass
class AdapterStats:
    """Statistics for one fetch call."""

    items_fetched: int = 0
    items_filtered: int = 0
    errors: int = 0
    start_time: float = field(default_factory=time.monotonic)

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.start_time


class BaseAdapter(ABC):
    """
    Abstract base class for source adapters.

    Subclasses must implement:
        - source_type: Registry tag (e.g. "rss", "github")
        - _fetch_raw(): Async generator yielding raw platform payloads
        - _transform(): Convert one payload to a ContentItem (or None)

    Subclasses may override:
        - validate_config(): Identifier/config checks
        - _default_headers(): Per-source auth headers
    """

    def __init__(
        self,
        rate_limit: int = 60,
        timeout: float = 15.0,
        retry_config: RetryConfig | None = None,
    ):
        """
        Args:
            rate_limit: Maximum requests per minute
            timeout: Per-request timeout in seconds
            retry_config: Retry policy for transient HTTP failures
        """
        self._rate_limiter = RateLimiter(rate=rate_limit)
        self._timeout = timeout
        self._retry_config = retry_config or RetryConfig()

    @property
    @abstractmethod
    def source_type(self) -> str:
        """Registry tag for this adapter."""
        ...

    @property
    def name(self) -> str:
        return f"{self.source_type}_adapter"

    def validate_config(self, identifier: str, config: dict[str, Any]) -> list[str]:
        """Return a list of configuration problems (empty when valid)."""
        if not identifier or not identifier.strip():
            return ["identifier must not be empty"]
        return []

    def _default_headers(self, config: dict[str, Any]) -> dict[str, str]:
        """Headers added to every request for one source."""
        return {}

    @abstractmethod
    def _fetch_raw(
        self,
        client: HTTPClient,
        identifier: str,
        config: dict[str, Any],
        since: datetime | None,
    ) -> AsyncIterator[Any]:
        """
        Fetch raw payloads from the platform.

        Subclasses MUST call ``await self._rate_limiter.acquire()`` before
        each HTTP request. Rate limiting is per request, not per item.
        """
        ...

    @abstractmethod
    def _transform(
        self,
        raw: Any,
        identifier: str,
        config: dict[str, Any],
    ) -> ContentItem | None:
        """
        Transform one raw payload to a ContentItem.

        Return None for payloads that should be dropped. May raise; the
        base class counts the error and moves on to the next payload.
        """
        ...

    async def fetch(
        self,
        identifier: str,
        config: dict[str, Any] | None = None,
        since: datetime | None = None,
    ) -> list[ContentItem]:
        """
        Fetch new items for one source.

        Never raises. Transport, rate-limit and parsing failures are logged,
        counted in ``feedpulse_adapter_errors_total`` and yield ``[]``.

        Args:
            identifier: Platform-specific address (feed URL, owner/repo, ...)
            config: Opaque per-source config
            since: Watermark; items with a native timestamp at or before it
                are dropped

        Returns:
            ContentItems in platform order
        """
        items, _ = await self.fetch_with_stats(identifier, config, since)
        return items

    async def fetch_with_stats(
        self,
        identifier: str,
        config: dict[str, Any] | None = None,
        since: datetime | None = None,
    ) -> tuple[list[ContentItem], AdapterStats]:
        """``fetch`` plus the counters of this call.

        Adapters are shared by every concurrent poll, so the counters live
        with the call rather than on the instance.
        """
        config = config or {}
        stats = AdapterStats()
        metrics = get_metrics()

        problems = self.validate_config(identifier, config)
        if problems:
            logger.warning(
                "%s rejected config for %r: %s", self.name, identifier, "; ".join(problems)
            )
            metrics.record_adapter_error(self.source_type, "invalid_config")
            stats.errors += 1
            return [], stats

        items: list[ContentItem] = []
        try:
            async with HTTPClient(
                retry_config=self._retry_config,
                timeout=self._timeout,
                headers=self._default_headers(config),
            ) as client:
                async for raw in self._fetch_raw(client, identifier, config, since):
                    try:
                        item = self._transform(raw, identifier, config)
                    except Exception as e:
                        stats.errors += 1
                        logger.warning("%s failed to transform item: %s", self.name, e)
                        continue

                    if item is None or not item.is_after(since):
                        stats.items_filtered += 1
                        continue

                    stats.items_fetched += 1
                    items.append(item)

        except RateLimitError as e:
            stats.errors += 1
            logger.warning("%s rate limited for %r: %s", self.name, identifier, e)
            metrics.record_adapter_error(self.source_type, "rate_limit")
            return [], stats
        except HTTPClientError as e:
            stats.errors += 1
            logger.warning(
                "%s request failed for %r (status=%s): %s",
                self.name, identifier, e.status_code, e,
            )
            metrics.record_adapter_error(self.source_type, "http")
            return [], stats
        except Exception as e:
            stats.errors += 1
            logger.error(
                "%s fetch failed for %r: %s", self.name, identifier, e, exc_info=True
            )
            metrics.record_adapter_error(self.source_type, type(e).__name__)
            return [], stats
        finally:
            logger.info(
                "%s completed for %r: fetched=%d filtered=%d errors=%d elapsed=%.2fs",
                self.name,
                identifier,
                stats.items_fetched,
                stats.items_filtered,
                stats.errors,
                stats.elapsed_seconds,
            )

        return items, stats


# Common utilities used across adapters

def clean_text(text: str) -> str:
    """Collapse whitespace and drop control characters."""
    text = " ".join(text.split())
    text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text)
    return text.strip()


def strip_html(html_content: str | None) -> str:
    """
    Extract readable text from an HTML fragment.

    Args:
        html_content: Raw HTML string

    Returns:
        Plain text with entities decoded and whitespace collapsed
    """
    if not html_content:
        return ""

    soup = BeautifulSoup(html_content, "html.parser")
    for element in soup(["script", "style"]):
        element.decompose()

    # <br> and block ends become spaces so words don't run together
    text = soup.get_text(separator=" ")
    text = html.unescape(text)
    return re.sub(r"\s+", " ", text).strip()


def stable_hash(value: str) -> str:
    """
    Generate a stable, deterministic hash from a string.

    SHA256 truncated to 16 hex characters. Unlike ``hash()``, this is
    deterministic across process restarts, so it is safe as an external id
    for platforms that expose no native id.
    """
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:16]


def parse_iso_datetime(value: Any) -> datetime | None:
    """Parse an ISO-8601 string (``Z`` suffix allowed) to an aware datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
