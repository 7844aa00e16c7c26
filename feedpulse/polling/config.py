"""
Polling scheduler configuration.

Override with environment variables prefixed POLLING_.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class PollingConfig(BaseSettings):
    """Configuration for the source polling sweep."""

    model_config = SettingsConfigDict(
        env_prefix="POLLING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    sweep_interval_seconds: int = Field(
        default=300,
        ge=5,
        description="Seconds between sweeps in run_forever()",
    )
    stale_after_seconds: int = Field(
        default=300,
        ge=0,
        description="A source is due when last polled longer ago than this",
    )
    max_sources_per_sweep: int = Field(
        default=100,
        ge=1,
        le=10_000,
        description="Upper bound on sources visited in one sweep",
    )
