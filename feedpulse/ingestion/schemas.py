"""
Content schemas for the ingestion pipeline.

``ContentItem`` is what every adapter returns; ``Content`` is the persisted
row the scheduler creates from it. The pair (source_id, external_id) is the
dedup key, so adapters MUST produce an external id that is stable across
fetches of the same upstream item.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class ContentItem(BaseModel):
    """
    Normalized item returned by a source adapter.

    ``posted_at`` is best effort; ``None`` means the platform exposes no
    native timestamp and the item bypasses watermark filtering.
    """

    external_id: str = Field(
        ...,
        min_length=1,
        description="Platform-native id (or deterministic content hash)",
        examples=["https://example.com/post/1", "release_123", "alice.bsky.social_3k2a"],
    )
    raw_content: str = Field(..., description="Plain-text body used for prompts")
    posted_at: datetime | None = Field(
        default=None,
        description="UTC timestamp of creation on the platform, if known",
    )
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        description="Opaque platform metadata (title, url/link, author, ...)",
    )
    fetched_at: datetime = Field(default_factory=_utc_now)

    @field_validator("posted_at")
    @classmethod
    def ensure_utc(cls, v: datetime | None) -> datetime | None:
        """Normalize naive timestamps to UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def title(self) -> str | None:
        return self.metadata.get("title")

    @property
    def url(self) -> str | None:
        return self.metadata.get("url") or self.metadata.get("link")

    def is_after(self, since: datetime | None) -> bool:
        """True if the item passes the ``since`` watermark.

        Items without a native timestamp always pass.
        """
        if since is None or self.posted_at is None:
            return True
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        return self.posted_at > since


@dataclass
class Content:
    """A persisted content row. Immutable once created."""

    id: str
    source_id: str
    external_id: str
    raw_content: str
    posted_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

    @property
    def title(self) -> str | None:
        return self.metadata.get("title")

    @property
    def url(self) -> str | None:
        return self.metadata.get("url") or self.metadata.get("link")
