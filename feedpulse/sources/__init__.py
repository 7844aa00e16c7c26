"""Sources: configured feeds and their polling watermark."""

from feedpulse.sources.repository import SourceRepository
from feedpulse.sources.schemas import Source

__all__ = [
    "Source",
    "SourceRepository",
]
