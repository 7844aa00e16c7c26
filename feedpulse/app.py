"""
Application wiring.

``build_app_context()`` connects storage and Redis once per process and
builds every registry (adapters, LLM providers, notification channels)
and service on top of them. Commands and long-running services receive
the context instead of constructing their own dependencies.

Usage:
    ctx = await build_app_context()
    try:
        await ctx.scheduler.sweep()
    finally:
        await ctx.close()
"""

from dataclasses import dataclass
from typing import Any

import redis.asyncio as redis
import structlog

from feedpulse.backtest.config import BacktestConfig
from feedpulse.backtest.repository import BacktestRepository
from feedpulse.backtest.service import BacktestService
from feedpulse.config.settings import Settings, get_settings
from feedpulse.digest.aggregator import DigestAggregator
from feedpulse.digest.config import DigestConfig
from feedpulse.events.sink import EventSink, NullEventSink, RedisEventSink
from feedpulse.ingestion.registry import AdapterRegistry, create_default_registry
from feedpulse.llm.config import LLMConfig
from feedpulse.llm.registry import LLMRegistry, create_llm_registry
from feedpulse.notifications.dispatcher import (
    NotificationConfig,
    NotificationDispatcher,
    create_dispatcher,
)
from feedpulse.polling.config import PollingConfig
from feedpulse.polling.scheduler import PollingScheduler
from feedpulse.sources.repository import SourceRepository
from feedpulse.storage.database import Database
from feedpulse.storage.repository import ContentRepository
from feedpulse.streams.config import StreamsConfig
from feedpulse.streams.processor import StreamProcessor
from feedpulse.streams.queue import StreamJobQueue
from feedpulse.streams.repository import (
    LlmOutputRepository,
    LogRepository,
    StreamRepository,
)
from feedpulse.streams.worker import StreamWorker

logger = structlog.get_logger(__name__)


@dataclass
class AppContext:
    """Everything one process needs, built once."""

    settings: Settings
    database: Database
    redis: Any | None
    sources: SourceRepository
    contents: ContentRepository
    streams: StreamRepository
    logs: LogRepository
    llm_outputs: LlmOutputRepository
    backtests: BacktestRepository
    adapters: AdapterRegistry
    llm: LLMRegistry
    dispatcher: NotificationDispatcher
    events: EventSink
    processor: StreamProcessor
    digest: DigestAggregator
    backtest_service: BacktestService
    queue: StreamJobQueue | None = None
    scheduler: PollingScheduler | None = None
    worker: StreamWorker | None = None

    async def close(self) -> None:
        """Release connections in reverse order of creation."""
        await self.backtest_service.shutdown()
        await self.llm.close()
        if self.queue is not None:
            await self.queue.close()
        if self.redis is not None:
            await self.redis.aclose()
        await self.database.close()
        logger.info("Application context closed")


async def build_app_context(
    settings: Settings | None = None,
    with_redis: bool = True,
    database: Database | None = None,
    redis_client: Any | None = None,
) -> AppContext:
    """
    Connect dependencies and build all registries and services.

    Args:
        settings: Central settings (defaults to get_settings())
        with_redis: Connect Redis for the work queue, dispatch dedup and
            events. Backtest and storage-only commands pass False.
        database: Pre-built database (tests)
        redis_client: Pre-built Redis client (tests)
    """
    settings = settings or get_settings()

    database = database or Database()
    await database.connect()

    if with_redis and redis_client is None:
        redis_client = redis.from_url(
            str(settings.redis_url),
            encoding="utf-8",
            decode_responses=True,
        )
    elif not with_redis:
        redis_client = None

    streams_config = StreamsConfig()

    sources = SourceRepository(database)
    contents = ContentRepository(database)
    streams = StreamRepository(database)
    logs = LogRepository(database)
    llm_outputs = LlmOutputRepository(database)
    backtests = BacktestRepository(database)

    adapters = create_default_registry(settings)
    llm = create_llm_registry(LLMConfig())
    dispatcher = create_dispatcher(NotificationConfig())

    events: EventSink
    if redis_client is not None:
        events = RedisEventSink(redis_client, channel=settings.events_channel)
    else:
        events = NullEventSink()

    processor = StreamProcessor(
        streams=streams,
        contents=contents,
        logs=logs,
        llm_outputs=llm_outputs,
        llm=llm,
        dispatcher=dispatcher,
        events=events,
        redis_client=redis_client,
        config=streams_config,
    )
    digest = DigestAggregator(
        streams=streams,
        contents=contents,
        llm_outputs=llm_outputs,
        llm=llm,
        dispatcher=dispatcher,
        config=DigestConfig(),
    )
    backtest_service = BacktestService(
        backtests=backtests,
        streams=streams,
        contents=contents,
        processor=processor,
        config=BacktestConfig(),
    )

    queue = scheduler = worker = None
    if redis_client is not None:
        queue = StreamJobQueue(redis_client=redis_client, config=streams_config)
        await queue.connect()
        scheduler = PollingScheduler(
            registry=adapters,
            sources=sources,
            contents=contents,
            streams=streams,
            queue=queue,
            config=PollingConfig(),
        )
        worker = StreamWorker(queue=queue, processor=processor, config=streams_config)

    logger.info(
        "Application context built",
        adapters=adapters.available_types(),
        llm_providers=llm.available_providers(),
        channels=dispatcher.available_channels(),
        redis=redis_client is not None,
    )

    return AppContext(
        settings=settings,
        database=database,
        redis=redis_client,
        sources=sources,
        contents=contents,
        streams=streams,
        logs=logs,
        llm_outputs=llm_outputs,
        backtests=backtests,
        adapters=adapters,
        llm=llm,
        dispatcher=dispatcher,
        events=events,
        processor=processor,
        digest=digest,
        backtest_service=backtest_service,
        queue=queue,
        scheduler=scheduler,
        worker=worker,
    )
