"""Schema definitions for backtests and their per-item results."""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class BacktestStatus(str, enum.Enum):
    """Lifecycle: PENDING -> RUNNING -> COMPLETED | FAILED. Never backwards."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class ResultStatus(str, enum.Enum):
    SUCCESS = "SUCCESS"
    FAILURE = "FAILURE"


@dataclass
class Backtest:
    """A replay of one stream over a half-open creation-time window."""

    id: str
    stream_id: str
    range_start: datetime
    range_end: datetime
    name: str | None = None
    description: str | None = None
    config: dict[str, Any] = field(default_factory=dict)
    status: BacktestStatus = BacktestStatus.PENDING
    total_items: int = 0
    processed_items: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None
    created_at: datetime | None = None

    @property
    def is_finished(self) -> bool:
        return self.status in (BacktestStatus.COMPLETED, BacktestStatus.FAILED)

    @property
    def progress(self) -> float:
        """Fraction of items processed, 0.0 to 1.0."""
        if self.total_items <= 0:
            return 0.0
        return min(self.processed_items / self.total_items, 1.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "stream_id": self.stream_id,
            "name": self.name,
            "description": self.description,
            "range_start": self.range_start.isoformat(),
            "range_end": self.range_end.isoformat(),
            "config": self.config,
            "status": self.status.value,
            "total_items": self.total_items,
            "processed_items": self.processed_items,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class BacktestResult:
    """Outcome of replaying one content row. Append-only."""

    backtest_id: str
    content_id: str
    status: ResultStatus
    output: dict[str, Any] | None = None
    error_message: str | None = None
    execution_time_ms: int = 0
    id: str | None = None
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "backtest_id": self.backtest_id,
            "content_id": self.content_id,
            "status": self.status.value,
            "output": self.output,
            "error_message": self.error_message,
            "execution_time_ms": self.execution_time_ms,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class BacktestResultsPage:
    """One page of results in replay order."""

    results: list[BacktestResult]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0
