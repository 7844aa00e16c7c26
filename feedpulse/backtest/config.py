"""Backtest runner configuration.

All settings can be overridden via ``BACKTEST_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BacktestConfig(BaseSettings):
    """Configuration for the backtest runner."""

    model_config = SettingsConfigDict(
        env_prefix="BACKTEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    max_concurrent_runs: int = Field(
        default=2,
        ge=1,
        le=20,
        description="Backtests executing at once; further runs wait for a slot",
    )
    progress_update_every: int = Field(
        default=10,
        ge=1,
        description="Persist processed_items after this many items",
    )
    max_results_page_size: int = Field(
        default=500,
        ge=1,
        le=5000,
        description="Upper bound for the results page limit",
    )
