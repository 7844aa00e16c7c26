"""Repositories for streams, logs and LLM outputs."""

import json
import logging
from datetime import datetime
from typing import Any

from feedpulse.storage.database import Database
from feedpulse.streams.schemas import LlmOutput, LogEntry, Stream

logger = logging.getLogger(__name__)

# Owner notification settings ride along with every stream read so the
# processor can fall back to them without a second query.
_SELECT_STREAM_SQL = """
SELECT s.*,
       COALESCE(u.settings -> 'notifications', '{}'::jsonb) AS user_settings
FROM streams s
LEFT JOIN users u ON u.id = s.user_id
"""


def _json_dict(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if isinstance(value, str):
        return dict(json.loads(value))
    return dict(value)


def _row_to_stream(row: Any) -> Stream:
    """Convert an asyncpg Record to a Stream."""
    return Stream(
        id=str(row["id"]),
        source_id=str(row["source_id"]),
        name=row["name"],
        status=row["status"],
        prompt_template=_json_dict(row.get("prompt_template")),
        notification_config=_json_dict(row.get("notification_config")),
        llm_config=_json_dict(row.get("llm_config")),
        aggregation_config=_json_dict(row.get("aggregation_config")),
        user_settings=_json_dict(row.get("user_settings")),
        created_at=row["created_at"],
    )


def _row_to_log(row: Any) -> LogEntry:
    return LogEntry(
        id=str(row["id"]),
        stream_id=str(row["stream_id"]),
        type=row["type"],
        message=row["message"],
        metadata=_json_dict(row.get("metadata")),
        created_at=row["created_at"],
    )


def _row_to_llm_output(row: Any) -> LlmOutput:
    backtest_id = row.get("backtest_id")
    return LlmOutput(
        id=str(row["id"]),
        content_id=str(row["content_id"]),
        stream_id=str(row["stream_id"]),
        model=row["model"],
        prompt_text=row["prompt_text"],
        raw_output=row["raw_output"],
        backtest_id=str(backtest_id) if backtest_id is not None else None,
        created_at=row.get("created_at"),
    )


class StreamRepository:
    """CRUD operations for streams plus digest schedule state."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create(
        self,
        source_id: str,
        name: str,
        prompt_template: dict[str, Any] | None = None,
        notification_config: dict[str, Any] | None = None,
        llm_config: dict[str, Any] | None = None,
        aggregation_config: dict[str, Any] | None = None,
        user_id: str | None = None,
    ) -> Stream:
        sql = """
            INSERT INTO streams (
                source_id, user_id, name, prompt_template,
                notification_config, llm_config, aggregation_config
            ) VALUES ($1, $2, $3, $4, $5, $6, $7)
            RETURNING id
        """
        stream_id = await self._db.fetchval(
            sql,
            source_id,
            user_id,
            name,
            json.dumps(prompt_template or {}),
            json.dumps(notification_config or {}),
            json.dumps(llm_config or {}),
            json.dumps(aggregation_config or {}),
        )
        stream = await self.get_by_id(str(stream_id))
        if stream is None:
            raise RuntimeError(f"Stream {stream_id} vanished after insert")
        return stream

    async def get_by_id(self, stream_id: str) -> Stream | None:
        row = await self._db.fetchrow(f"{_SELECT_STREAM_SQL} WHERE s.id = $1", stream_id)
        return _row_to_stream(row) if row else None

    async def list_active_by_source(self, source_id: str) -> list[Stream]:
        """Active streams bound to a source, oldest first."""
        rows = await self._db.fetch(
            f"""{_SELECT_STREAM_SQL}
            WHERE s.source_id = $1 AND s.status = 'active'
            ORDER BY s.created_at""",
            source_id,
        )
        return [_row_to_stream(r) for r in rows]

    async def list_active_digests(self) -> list[Stream]:
        """Active streams whose aggregation config marks them as digests."""
        rows = await self._db.fetch(
            f"""{_SELECT_STREAM_SQL}
            WHERE s.status = 'active'
              AND s.aggregation_config ->> 'type' = 'digest'
            ORDER BY s.created_at"""
        )
        return [_row_to_stream(r) for r in rows]

    async def list_streams(
        self,
        source_id: str | None = None,
        limit: int = 50,
    ) -> list[Stream]:
        if source_id:
            rows = await self._db.fetch(
                f"{_SELECT_STREAM_SQL} WHERE s.source_id = $1 ORDER BY s.created_at LIMIT $2",
                source_id,
                limit,
            )
        else:
            rows = await self._db.fetch(
                f"{_SELECT_STREAM_SQL} ORDER BY s.created_at LIMIT $1", limit
            )
        return [_row_to_stream(r) for r in rows]

    async def set_status(self, stream_id: str, status: str) -> bool:
        result = await self._db.execute(
            "UPDATE streams SET status = $2 WHERE id = $1", stream_id, status
        )
        return result.endswith("1")

    async def update_schedule(
        self,
        stream_id: str,
        next_run: datetime,
        last_run: datetime | None = None,
    ) -> None:
        """Merge digest schedule watermarks into ``aggregation_config``."""
        patch: dict[str, str] = {"next_run": next_run.isoformat()}
        if last_run is not None:
            patch["last_run"] = last_run.isoformat()

        await self._db.execute(
            """
            UPDATE streams
            SET aggregation_config = aggregation_config || $2::jsonb
            WHERE id = $1
            """,
            stream_id,
            json.dumps(patch),
        )


class LogRepository:
    """Append-only execution log for streams."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create(self, entry: LogEntry) -> LogEntry:
        sql = """
            INSERT INTO logs (stream_id, type, message, metadata)
            VALUES ($1, $2, $3, $4)
            RETURNING *
        """
        row = await self._db.fetchrow(
            sql,
            entry.stream_id,
            entry.type,
            entry.message,
            json.dumps(entry.metadata, default=str),
        )
        return _row_to_log(row)

    async def list_for_stream(self, stream_id: str, limit: int = 100) -> list[LogEntry]:
        rows = await self._db.fetch(
            """
            SELECT * FROM logs WHERE stream_id = $1
            ORDER BY created_at DESC
            LIMIT $2
            """,
            stream_id,
            limit,
        )
        return [_row_to_log(r) for r in rows]


class LlmOutputRepository:
    """LLM outputs. Live and backtest rows are never mixed in one query."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create(self, output: LlmOutput) -> LlmOutput:
        sql = """
            INSERT INTO llm_outputs (
                content_id, stream_id, model, prompt_text, raw_output, backtest_id
            ) VALUES ($1, $2, $3, $4, $5, $6)
            RETURNING *
        """
        row = await self._db.fetchrow(
            sql,
            output.content_id,
            output.stream_id,
            output.model,
            output.prompt_text,
            output.raw_output,
            output.backtest_id,
        )
        return _row_to_llm_output(row)

    async def list_live(self, stream_id: str, limit: int = 50) -> list[LlmOutput]:
        rows = await self._db.fetch(
            """
            SELECT * FROM llm_outputs
            WHERE stream_id = $1 AND backtest_id IS NULL
            ORDER BY created_at DESC
            LIMIT $2
            """,
            stream_id,
            limit,
        )
        return [_row_to_llm_output(r) for r in rows]

    async def list_for_backtest(self, backtest_id: str) -> list[LlmOutput]:
        rows = await self._db.fetch(
            """
            SELECT * FROM llm_outputs
            WHERE backtest_id = $1
            ORDER BY created_at ASC
            """,
            backtest_id,
        )
        return [_row_to_llm_output(r) for r in rows]
