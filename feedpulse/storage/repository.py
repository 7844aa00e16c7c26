"""
Content repository.

Content rows are immutable and keyed by (source_id, external_id). Inserts
use ``ON CONFLICT DO NOTHING`` so a duplicate external id is a no-op rather
than an error, even when two sweeps race on the same item.
"""

import json
import logging
from datetime import datetime
from typing import Any

from feedpulse.ingestion.schemas import Content, ContentItem
from feedpulse.storage.database import Database

logger = logging.getLogger(__name__)


class ContentRepository:
    """
    Repository for content storage and retrieval.

    Query shapes:
        - existence check by (source_id, external_id) for the scheduler
        - created-after scan for the digest aggregator
        - half-open [start, end) range scan for the backtest runner
    """

    def __init__(self, database: Database):
        self._db = database

    async def exists(self, source_id: str, external_id: str) -> bool:
        """Check whether a content row already exists for this source."""
        sql = """
            SELECT EXISTS(
                SELECT 1 FROM content
                WHERE source_id = $1 AND external_id = $2
            )
        """
        return bool(await self._db.fetchval(sql, source_id, external_id))

    async def create(self, source_id: str, item: ContentItem) -> Content | None:
        """
        Insert a content row.

        Returns:
            The created Content, or None if (source_id, external_id)
            already existed.
        """
        sql = """
            INSERT INTO content (source_id, external_id, raw_content, posted_at, metadata)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (source_id, external_id) DO NOTHING
            RETURNING *
        """
        row = await self._db.fetchrow(
            sql,
            source_id,
            item.external_id,
            item.raw_content,
            item.posted_at or item.fetched_at,
            json.dumps(item.metadata, default=str),
        )
        if row is None:
            logger.debug(
                "Content %s/%s already exists, skipping", source_id, item.external_id
            )
            return None
        return _row_to_content(row)

    async def get_by_id(self, content_id: str) -> Content | None:
        row = await self._db.fetchrow("SELECT * FROM content WHERE id = $1", content_id)
        return _row_to_content(row) if row else None

    async def list_created_after(
        self,
        source_id: str,
        after: datetime,
        limit: int = 500,
    ) -> list[Content]:
        """Content for a source created strictly after ``after``, oldest first."""
        sql = """
            SELECT * FROM content
            WHERE source_id = $1 AND created_at > $2
            ORDER BY created_at ASC
            LIMIT $3
        """
        rows = await self._db.fetch(sql, source_id, after, limit)
        return [_row_to_content(row) for row in rows]

    async def count_in_range(
        self,
        source_id: str,
        start: datetime,
        end: datetime,
    ) -> int:
        """Count content created in the half-open window [start, end)."""
        sql = """
            SELECT COUNT(*) FROM content
            WHERE source_id = $1 AND created_at >= $2 AND created_at < $3
        """
        return int(await self._db.fetchval(sql, source_id, start, end) or 0)

    async def list_in_range(
        self,
        source_id: str,
        start: datetime,
        end: datetime,
    ) -> list[Content]:
        """Content created in [start, end), in ascending creation order."""
        sql = """
            SELECT * FROM content
            WHERE source_id = $1 AND created_at >= $2 AND created_at < $3
            ORDER BY created_at ASC, id ASC
        """
        rows = await self._db.fetch(sql, source_id, start, end)
        return [_row_to_content(row) for row in rows]

    async def list_recent(self, source_id: str, limit: int = 20) -> list[Content]:
        """Most recent content for a source, newest first."""
        sql = """
            SELECT * FROM content
            WHERE source_id = $1
            ORDER BY created_at DESC
            LIMIT $2
        """
        rows = await self._db.fetch(sql, source_id, limit)
        return [_row_to_content(row) for row in rows]


def _row_to_content(row: Any) -> Content:
    """Convert an asyncpg Record to a Content."""
    metadata = row.get("metadata") or {}
    if isinstance(metadata, str):
        metadata = json.loads(metadata)

    return Content(
        id=str(row["id"]),
        source_id=str(row["source_id"]),
        external_id=row["external_id"],
        raw_content=row["raw_content"],
        posted_at=row.get("posted_at"),
        metadata=dict(metadata),
        created_at=row.get("created_at"),
    )
