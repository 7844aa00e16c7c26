"""Backtest replay of streams over historical content.

Components:
- BacktestConfig: BACKTEST_* settings
- Backtest / BacktestResult: Run and per-item records
- BacktestRepository: Status-guarded persistence
- BacktestService: create, run (background task), results, delete
"""

from feedpulse.backtest.config import BacktestConfig
from feedpulse.backtest.repository import BacktestRepository
from feedpulse.backtest.schemas import (
    Backtest,
    BacktestResult,
    BacktestResultsPage,
    BacktestStatus,
    ResultStatus,
)
from feedpulse.backtest.service import BacktestService

__all__ = [
    "Backtest",
    "BacktestConfig",
    "BacktestRepository",
    "BacktestResult",
    "BacktestResultsPage",
    "BacktestService",
    "BacktestStatus",
    "ResultStatus",
]
