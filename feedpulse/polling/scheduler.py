"""
Polling scheduler - turns stale sources into content rows and stream jobs.

Each sweep picks the sources due for polling (never polled first), fetches
them through the adapter registry using ``last_polled_at`` as the ``since``
watermark, stores items not seen before, and enqueues one job per active
stream for every row it created. The watermark only moves forward.

Features:
- Per-source failure isolation
- Re-entrance guard (an overlapping sweep is skipped, not queued)
- Metrics per source type
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import structlog

from feedpulse.errors import NotFoundError
from feedpulse.ingestion.registry import AdapterRegistry
from feedpulse.observability.metrics import get_metrics
from feedpulse.polling.config import PollingConfig
from feedpulse.sources.repository import SourceRepository
from feedpulse.sources.schemas import Source
from feedpulse.storage.repository import ContentRepository
from feedpulse.streams.queue import StreamJob, StreamJobQueue
from feedpulse.streams.repository import StreamRepository

logger = structlog.get_logger(__name__)


@dataclass
class SourcePollResult:
    """Counters for one polled source."""

    source_id: str
    items_fetched: int = 0
    items_created: int = 0
    duplicates: int = 0
    jobs_enqueued: int = 0
    item_errors: int = 0


@dataclass
class PollSweepResult:
    """Summary of one sweep."""

    sources_polled: int = 0
    sources_failed: int = 0
    items_created: int = 0
    jobs_enqueued: int = 0
    skipped: bool = False
    errors: list[str] = field(default_factory=list)


class PollingScheduler:
    """
    Watermark-based polling of all registered sources.

    Usage:
        scheduler = PollingScheduler(registry, sources, contents, streams, queue)
        result = await scheduler.sweep()
        # or
        await scheduler.run_forever()
    """

    def __init__(
        self,
        registry: AdapterRegistry,
        sources: SourceRepository,
        contents: ContentRepository,
        streams: StreamRepository,
        queue: StreamJobQueue,
        config: PollingConfig | None = None,
    ):
        self._registry = registry
        self._sources = sources
        self._contents = contents
        self._streams = streams
        self._queue = queue
        self._config = config or PollingConfig()
        self._lock = asyncio.Lock()
        self._running = False

    async def sweep(self) -> PollSweepResult:
        """Poll every stale source once.

        Returns a skipped result if another sweep is still running.
        """
        if self._lock.locked():
            logger.info("Polling sweep already in progress, skipping")
            return PollSweepResult(skipped=True)

        async with self._lock:
            result = PollSweepResult()
            cutoff = datetime.now(timezone.utc) - timedelta(
                seconds=self._config.stale_after_seconds
            )
            sources = await self._sources.list_stale(
                cutoff, limit=self._config.max_sources_per_sweep
            )
            logger.info("Polling sweep started", sources=len(sources))

            metrics = get_metrics()
            for source in sources:
                try:
                    polled = await self._poll(source)
                except Exception as e:
                    result.sources_failed += 1
                    result.errors.append(f"{source.id}: {e}")
                    metrics.sources_polled.labels(status="failed").inc()
                    logger.error(
                        "Failed to poll source",
                        source_id=source.id,
                        source_type=source.type,
                        error=str(e),
                    )
                    continue

                result.sources_polled += 1
                result.items_created += polled.items_created
                result.jobs_enqueued += polled.jobs_enqueued
                metrics.sources_polled.labels(status="ok").inc()

            logger.info(
                "Polling sweep finished",
                polled=result.sources_polled,
                failed=result.sources_failed,
                items_created=result.items_created,
                jobs_enqueued=result.jobs_enqueued,
            )
            return result

    async def poll_source(self, source_id: str) -> SourcePollResult:
        """Poll one source on demand, regardless of staleness.

        Raises:
            NotFoundError: If the source does not exist.
        """
        source = await self._sources.get_by_id(source_id)
        if source is None:
            raise NotFoundError(f"Source {source_id} not found", source_id=source_id)
        return await self._poll(source)

    async def _poll(self, source: Source) -> SourcePollResult:
        """Fetch, store and fan out one source, then advance its watermark.

        Unknown source types and repository failures propagate and leave
        the watermark untouched.
        """
        metrics = get_metrics()
        result = SourcePollResult(source_id=source.id)
        polled_at = datetime.now(timezone.utc)

        start = time.monotonic()
        items = await self._registry.fetch(
            source.type, source.identifier, source.config, since=source.last_polled_at
        )
        fetch_latency = time.monotonic() - start
        result.items_fetched = len(items)

        streams = await self._streams.list_active_by_source(source.id) if items else []

        for item in items:
            try:
                if await self._contents.exists(source.id, item.external_id):
                    result.duplicates += 1
                    continue

                content = await self._contents.create(source.id, item)
                if content is None:
                    # Lost an insert race with a concurrent poll
                    result.duplicates += 1
                    continue
                result.items_created += 1

                for stream in streams:
                    await self._queue.enqueue(
                        StreamJob(stream_id=stream.id, content_id=content.id)
                    )
                    result.jobs_enqueued += 1
                    metrics.jobs_enqueued.inc()
            except Exception as e:
                result.item_errors += 1
                logger.error(
                    "Failed to store item",
                    source_id=source.id,
                    external_id=item.external_id,
                    error=str(e),
                )

        if result.duplicates:
            metrics.content_duplicates.labels(source_type=source.type).inc(result.duplicates)
        metrics.record_ingestion(source.type, count=result.items_created, latency=fetch_latency)

        await self._sources.mark_polled(source.id, polled_at)

        logger.info(
            "Source polled",
            source_id=source.id,
            source_type=source.type,
            fetched=result.items_fetched,
            created=result.items_created,
            duplicates=result.duplicates,
            jobs=result.jobs_enqueued,
        )
        return result

    async def run_forever(self) -> None:
        """Sweep every ``sweep_interval_seconds`` until stop()."""
        self._running = True
        logger.info(
            "Starting polling scheduler",
            interval_seconds=self._config.sweep_interval_seconds,
        )
        while self._running:
            try:
                await self.sweep()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Polling sweep failed", error=str(e))
            await asyncio.sleep(self._config.sweep_interval_seconds)

    async def stop(self) -> None:
        logger.info("Stopping polling scheduler")
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running
