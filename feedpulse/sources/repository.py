"""Database repository for the sources table."""

import json
import logging
from datetime import datetime
from typing import Any

from feedpulse.sources.schemas import Source
from feedpulse.storage.database import Database

logger = logging.getLogger(__name__)

_INSERT_SQL = """
INSERT INTO sources (type, identifier, config)
VALUES ($1, $2, $3)
RETURNING *
"""

# Stale = never polled, or polled before the cutoff. Never-polled sources
# go first so new feeds are picked up on the next sweep.
_LIST_STALE_SQL = """
SELECT * FROM sources
WHERE last_polled_at IS NULL OR last_polled_at < $1
ORDER BY last_polled_at ASC NULLS FIRST
LIMIT $2
"""

# GREATEST keeps the watermark monotonic if clocks or callers disagree
_MARK_POLLED_SQL = """
UPDATE sources
SET last_polled_at = GREATEST(COALESCE(last_polled_at, $2), $2)
WHERE id = $1
RETURNING last_polled_at
"""


def _record_to_source(record: Any) -> Source:
    """Convert an asyncpg Record to a Source dataclass."""
    config = record["config"] or {}
    if isinstance(config, str):
        config = json.loads(config)

    return Source(
        id=str(record["id"]),
        type=record["type"],
        identifier=record["identifier"],
        config=dict(config),
        last_polled_at=record["last_polled_at"],
        created_at=record["created_at"],
    )


class SourceRepository:
    """CRUD operations for the sources table plus the polling watermark."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create(
        self,
        source_type: str,
        identifier: str,
        config: dict[str, Any] | None = None,
    ) -> Source:
        row = await self._db.fetchrow(
            _INSERT_SQL, source_type, identifier, json.dumps(config or {})
        )
        source = _record_to_source(row)
        logger.info("Created source %s (%s:%s)", source.id, source_type, identifier)
        return source

    async def get_by_id(self, source_id: str) -> Source | None:
        row = await self._db.fetchrow("SELECT * FROM sources WHERE id = $1", source_id)
        return _record_to_source(row) if row else None

    async def list_sources(
        self,
        source_type: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Source]:
        """List sources, optionally filtered by type."""
        conditions: list[str] = []
        params: list = []
        idx = 1

        if source_type:
            conditions.append(f"type = ${idx}")
            params.append(source_type)
            idx += 1

        where_clause = " WHERE " + " AND ".join(conditions) if conditions else ""
        sql = f"""
            SELECT * FROM sources{where_clause}
            ORDER BY created_at
            LIMIT ${idx} OFFSET ${idx + 1}
        """
        params.extend([limit, offset])
        rows = await self._db.fetch(sql, *params)
        return [_record_to_source(r) for r in rows]

    async def list_stale(self, cutoff: datetime, limit: int = 100) -> list[Source]:
        """Sources never polled or last polled before ``cutoff``."""
        rows = await self._db.fetch(_LIST_STALE_SQL, cutoff, limit)
        return [_record_to_source(r) for r in rows]

    async def mark_polled(self, source_id: str, polled_at: datetime) -> datetime | None:
        """Advance ``last_polled_at`` (never moves it backwards).

        Returns the stored watermark, or None if the source vanished.
        """
        return await self._db.fetchval(_MARK_POLLED_SQL, source_id, polled_at)

    async def update_config(self, source_id: str, config: dict[str, Any]) -> bool:
        result = await self._db.execute(
            "UPDATE sources SET config = $2 WHERE id = $1",
            source_id,
            json.dumps(config),
        )
        return result.endswith("1")

    async def delete(self, source_id: str) -> bool:
        """Delete a source. Streams and content cascade in the database."""
        result = await self._db.execute("DELETE FROM sources WHERE id = $1", source_id)
        return result.endswith("1")
