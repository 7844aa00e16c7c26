"""Backtest and backtest result persistence.

Status transitions are guarded in SQL: a backtest enters RUNNING only from
PENDING, so concurrent ``run`` calls cannot both start it.
"""

import json
import logging
from datetime import datetime
from typing import Any

from feedpulse.backtest.schemas import (
    Backtest,
    BacktestResult,
    BacktestStatus,
    ResultStatus,
)
from feedpulse.storage.database import Database

logger = logging.getLogger(__name__)


def _json(value: Any) -> Any:
    if isinstance(value, str):
        return json.loads(value)
    return value


def _row_to_backtest(row: Any) -> Backtest:
    """Convert an asyncpg Record to a Backtest."""
    return Backtest(
        id=str(row["id"]),
        stream_id=str(row["stream_id"]),
        name=row.get("name"),
        description=row.get("description"),
        range_start=row["range_start"],
        range_end=row["range_end"],
        config=_json(row.get("config")) or {},
        status=BacktestStatus(row["status"]),
        total_items=row.get("total_items") or 0,
        processed_items=row.get("processed_items") or 0,
        started_at=row.get("started_at"),
        completed_at=row.get("completed_at"),
        error_message=row.get("error_message"),
        created_at=row.get("created_at"),
    )


def _row_to_result(row: Any) -> BacktestResult:
    """Convert an asyncpg Record to a BacktestResult."""
    return BacktestResult(
        id=str(row["id"]),
        backtest_id=str(row["backtest_id"]),
        content_id=str(row["content_id"]),
        status=ResultStatus(row["status"]),
        output=_json(row.get("output")),
        error_message=row.get("error_message"),
        execution_time_ms=row.get("execution_time_ms") or 0,
        created_at=row.get("created_at"),
    )


class BacktestRepository:
    """CRUD operations for backtests and their results."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create(
        self,
        stream_id: str,
        range_start: datetime,
        range_end: datetime,
        total_items: int,
        name: str | None = None,
        description: str | None = None,
        config: dict[str, Any] | None = None,
    ) -> Backtest:
        """Insert a PENDING backtest."""
        sql = """
            INSERT INTO backtests (
                stream_id, name, description, range_start, range_end,
                config, status, total_items
            ) VALUES ($1, $2, $3, $4, $5, $6, 'PENDING', $7)
            RETURNING *
        """
        row = await self._db.fetchrow(
            sql,
            stream_id,
            name,
            description,
            range_start,
            range_end,
            json.dumps(config or {}),
            total_items,
        )
        return _row_to_backtest(row)

    async def get_by_id(self, backtest_id: str) -> Backtest | None:
        row = await self._db.fetchrow("SELECT * FROM backtests WHERE id = $1", backtest_id)
        if row is None:
            return None
        return _row_to_backtest(row)

    async def list_backtests(
        self,
        stream_id: str | None = None,
        limit: int = 50,
    ) -> list[Backtest]:
        """Backtests newest first, optionally for one stream."""
        if stream_id:
            sql = """
                SELECT * FROM backtests
                WHERE stream_id = $1
                ORDER BY created_at DESC
                LIMIT $2
            """
            rows = await self._db.fetch(sql, stream_id, limit)
        else:
            sql = """
                SELECT * FROM backtests
                ORDER BY created_at DESC
                LIMIT $1
            """
            rows = await self._db.fetch(sql, limit)
        return [_row_to_backtest(row) for row in rows]

    async def mark_running(self, backtest_id: str, started_at: datetime) -> bool:
        """PENDING -> RUNNING. Returns False if the backtest was not PENDING."""
        sql = """
            UPDATE backtests
            SET status = 'RUNNING', started_at = $2
            WHERE id = $1 AND status = 'PENDING'
            RETURNING id
        """
        return await self._db.fetchval(sql, backtest_id, started_at) is not None

    async def update_progress(self, backtest_id: str, processed_items: int) -> None:
        await self._db.execute(
            "UPDATE backtests SET processed_items = $2 WHERE id = $1",
            backtest_id,
            processed_items,
        )

    async def mark_completed(
        self,
        backtest_id: str,
        processed_items: int,
        completed_at: datetime,
    ) -> None:
        sql = """
            UPDATE backtests
            SET status = 'COMPLETED', processed_items = $2, completed_at = $3
            WHERE id = $1 AND status = 'RUNNING'
        """
        await self._db.execute(sql, backtest_id, processed_items, completed_at)

    async def mark_failed(
        self,
        backtest_id: str,
        error: str,
        completed_at: datetime,
    ) -> None:
        sql = """
            UPDATE backtests
            SET status = 'FAILED', error_message = $2, completed_at = $3
            WHERE id = $1 AND status = 'RUNNING'
        """
        await self._db.execute(sql, backtest_id, error, completed_at)

    async def delete(self, backtest_id: str) -> bool:
        """Delete a backtest that is not running. Results and outputs cascade."""
        result = await self._db.execute(
            "DELETE FROM backtests WHERE id = $1 AND status <> 'RUNNING'", backtest_id
        )
        return result.endswith("1")

    # Results

    async def add_result(self, result: BacktestResult) -> BacktestResult:
        sql = """
            INSERT INTO backtest_results (
                backtest_id, content_id, status, output,
                error_message, execution_time_ms
            ) VALUES ($1, $2, $3, $4, $5, $6)
            RETURNING *
        """
        row = await self._db.fetchrow(
            sql,
            result.backtest_id,
            result.content_id,
            result.status.value,
            json.dumps(result.output) if result.output is not None else None,
            result.error_message,
            result.execution_time_ms,
        )
        return _row_to_result(row)

    async def list_results(
        self,
        backtest_id: str,
        offset: int = 0,
        limit: int = 50,
    ) -> list[BacktestResult]:
        """Results in replay order."""
        sql = """
            SELECT * FROM backtest_results
            WHERE backtest_id = $1
            ORDER BY created_at ASC, id ASC
            OFFSET $2 LIMIT $3
        """
        rows = await self._db.fetch(sql, backtest_id, offset, limit)
        return [_row_to_result(row) for row in rows]

    async def count_results(self, backtest_id: str) -> int:
        return int(
            await self._db.fetchval(
                "SELECT COUNT(*) FROM backtest_results WHERE backtest_id = $1",
                backtest_id,
            )
            or 0
        )
