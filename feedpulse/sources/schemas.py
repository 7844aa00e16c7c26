"""Data models for the sources module."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class Source:
    """A configured external feed polled for content.

    ``type`` is the adapter tag (rss, github, bluesky, ...) and
    ``identifier`` the platform-specific address within it. ``config`` is
    opaque to the scheduler and passed through to the adapter.
    """

    id: str
    type: str
    identifier: str
    config: dict[str, Any] = field(default_factory=dict)
    last_polled_at: datetime | None = None
    created_at: datetime | None = None
