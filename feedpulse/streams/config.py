"""
Stream processing configuration.

Settings for the stream job queue (Redis Streams names, redelivery) and
the worker pool. Override with environment variables prefixed STREAMS_.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StreamsConfig(BaseSettings):
    """Configuration for the stream job queue and worker."""

    model_config = SettingsConfigDict(
        env_prefix="STREAMS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Redis stream configuration
    stream_name: str = Field(
        default="stream_jobs",
        description="Redis stream carrying (stream_id, content_id) jobs",
    )
    consumer_group: str = Field(
        default="stream_workers",
        description="Consumer group shared by all stream workers",
    )
    dlq_stream_name: str = Field(
        default="stream_jobs:dlq",
        description="Dead letter stream for jobs that exhausted delivery attempts",
    )
    max_stream_length: int = Field(
        default=100_000,
        ge=1000,
        description="Approximate cap applied on XADD",
    )

    # Redelivery
    idle_timeout_ms: int = Field(
        default=60_000,
        ge=1000,
        description="Pending time before a job is reclaimed by another consumer",
    )
    max_delivery_attempts: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Deliveries allowed before a job is dead-lettered",
    )

    # Worker pool
    worker_concurrency: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Jobs processed concurrently per worker process",
    )
    worker_batch_size: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Messages read per XREADGROUP call",
    )
    worker_block_ms: int = Field(
        default=5000,
        ge=100,
        description="XREADGROUP block time",
    )

    # Dispatch idempotency
    dispatch_dedup_ttl_hours: int = Field(
        default=24,
        ge=1,
        le=168,
        description="Lifetime of the per (stream, content) dispatch key",
    )
