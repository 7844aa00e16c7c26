"""
Digest aggregation configuration.

Override with environment variables prefixed DIGEST_.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DigestConfig(BaseSettings):
    """Configuration for the digest aggregator."""

    model_config = SettingsConfigDict(
        env_prefix="DIGEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    tick_interval_seconds: int = Field(
        default=3600,
        ge=60,
        description="Seconds between digest ticks",
    )
    default_schedule: str = Field(
        default="0 9 * * *",
        description="Schedule used when a digest stream sets none (minute hour * * *)",
    )
    default_prompt: str = Field(
        default="Summarize the following items into a daily digest:\n\n{{content}}",
        description="Digest template used when a stream sets none",
    )
    max_items: int = Field(
        default=500,
        ge=1,
        le=5000,
        description="Maximum content rows folded into one digest",
    )
