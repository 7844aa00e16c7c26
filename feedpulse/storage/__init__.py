"""Storage layer: asyncpg pool, schema DDL and content persistence."""

from feedpulse.storage.database import Database
from feedpulse.storage.repository import ContentRepository
from feedpulse.storage.schema import create_tables

__all__ = ["Database", "ContentRepository", "create_tables"]
