"""Notification message schema."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class NotificationMessage:
    """A rendered notification, independent of the delivery channel.

    Attributes:
        title: Short heading (bold/embed title where the channel supports it).
        content: Body text produced by the notification prompt, or the raw
            content when the stream has no notification prompt.
        url: Link back to the source item, if known.
        metadata: Free-form context (``stream_id``, ``source_id``).
    """

    title: str
    content: str
    url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "content": self.content,
            "url": self.url,
            "metadata": self.metadata,
        }
