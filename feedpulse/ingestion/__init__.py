"""Content ingestion - source adapters, the adapter registry, and content schemas."""

from feedpulse.ingestion.base_adapter import BaseAdapter
from feedpulse.ingestion.registry import AdapterRegistry, create_default_registry
from feedpulse.ingestion.schemas import Content, ContentItem

__all__ = [
    "AdapterRegistry",
    "BaseAdapter",
    "Content",
    "ContentItem",
    "create_default_registry",
]
