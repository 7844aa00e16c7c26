"""
Stream worker - consumes stream jobs and runs the stream processor.

Runs as a standalone service that:
1. Consumes (stream_id, content_id) jobs from the stream job queue
2. Runs each job through StreamProcessor with bounded concurrency
3. Acks jobs that reached a terminal outcome
4. Leaves failed jobs pending so the queue redelivers or dead-letters them
"""

import asyncio
import time
from typing import Any

import structlog

from feedpulse.config.settings import get_settings
from feedpulse.observability.logging import bind_context
from feedpulse.observability.metrics import get_metrics
from feedpulse.queues.backoff import ExponentialBackoff
from feedpulse.streams.config import StreamsConfig
from feedpulse.streams.processor import StreamProcessor
from feedpulse.streams.queue import StreamJob, StreamJobQueue

logger = structlog.get_logger(__name__)


class StreamWorker:
    """
    Worker pool that processes stream jobs from the queue.

    Features:
    - Up to ``worker_concurrency`` jobs in flight (one task per job)
    - Supervised reconnect loop with exponential backoff
    - Graceful shutdown that drains in-flight jobs

    Usage:
        worker = StreamWorker(queue, processor)
        await worker.start()  # Runs until stopped
    """

    def __init__(
        self,
        queue: StreamJobQueue,
        processor: StreamProcessor,
        config: StreamsConfig | None = None,
        concurrency: int | None = None,
    ):
        self._config = config or StreamsConfig()
        self._queue = queue
        self._processor = processor
        self._concurrency = concurrency or self._config.worker_concurrency
        self._semaphore = asyncio.Semaphore(self._concurrency)
        self._tasks: set[asyncio.Task] = set()
        self._consumer_task: asyncio.Task | None = None
        self._running = False
        self._processed = 0
        self._failed = 0

        logger.info("StreamWorker initialized", concurrency=self._concurrency)

    async def start(self) -> None:
        """
        Start the worker with a supervised retry loop.

        Reconnects on transient failures using exponential backoff. Exits
        after max_consecutive_failures, on stop() or on CancelledError.
        """
        self._running = True
        settings = get_settings()
        backoff = ExponentialBackoff(
            base_delay=settings.worker_backoff_base_delay,
            max_delay=settings.worker_backoff_max_delay,
        )

        logger.info("Starting stream worker")

        while self._running:
            try:
                await self._queue.connect()
                self._consumer_task = asyncio.create_task(self._process_loop())
                await self._consumer_task
                if not self._running:
                    break
            except asyncio.CancelledError:
                logger.info("Stream worker cancelled")
                break
            except Exception as e:
                if backoff.exhausted(settings.worker_max_consecutive_failures):
                    logger.error(
                        "Stream worker exceeded max consecutive failures",
                        failures=backoff.attempt,
                        error=str(e),
                    )
                    await self._cleanup()
                    raise
                delay = backoff.next_delay()
                logger.warning(
                    "Stream worker error, retrying",
                    error=str(e),
                    attempt=backoff.attempt,
                    retry_delay=round(delay, 1),
                )
                await self._cleanup()
                await asyncio.sleep(delay)
            else:
                backoff.reset()

        self._running = False
        await self._cleanup()

    async def stop(self) -> None:
        """Stop consuming; in-flight jobs are drained by cleanup."""
        logger.info("Stopping stream worker")
        self._running = False
        if self._consumer_task is not None and not self._consumer_task.done():
            self._consumer_task.cancel()

    async def _cleanup(self) -> None:
        """Wait for in-flight jobs to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("Stream worker cleaned up", in_flight=len(self._tasks))

    async def _process_loop(self) -> None:
        """Main consumption loop."""
        metrics = get_metrics()
        async for job in self._queue.consume(
            count=self._config.worker_batch_size,
            block_ms=self._config.worker_block_ms,
        ):
            if not self._running:
                break

            await self._semaphore.acquire()
            task = asyncio.create_task(self._handle(job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

            try:
                pending = await self._queue.get_pending_count()
                metrics.set_queue_pending(self._config.stream_name, pending)
            except Exception:
                pass  # Don't fail on metrics

    async def _handle(self, job: StreamJob) -> None:
        """Process one job; ack on any terminal outcome."""
        bind_context(stream_id=job.stream_id, content_id=job.content_id)
        metrics = get_metrics()
        start = time.monotonic()
        try:
            outcome = await self._processor.process(job.stream_id, job.content_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._failed += 1
            metrics.record_job("error", time.monotonic() - start)
            logger.error(
                "Stream job failed, leaving pending for redelivery",
                stream_id=job.stream_id,
                content_id=job.content_id,
                message_id=job.message_id,
                retry_count=job.retry_count,
                error=str(e),
            )
            return
        else:
            await self._queue.ack(job.message_id)
            self._processed += 1
            metrics.record_job(outcome.value, time.monotonic() - start)
            logger.debug(
                "Stream job processed",
                stream_id=job.stream_id,
                content_id=job.content_id,
                outcome=outcome.value,
            )
        finally:
            self._semaphore.release()

    async def run_once(self, jobs: list[StreamJob]) -> dict[str, int]:
        """
        Process jobs directly, without the queue.

        Useful for testing or replaying specific (stream, content) pairs.
        """
        stats: dict[str, int] = {"total": len(jobs), "errors": 0}
        for job in jobs:
            try:
                outcome = await self._processor.process(job.stream_id, job.content_id)
            except Exception as e:
                stats["errors"] += 1
                logger.error(
                    "Error processing stream job",
                    stream_id=job.stream_id,
                    content_id=job.content_id,
                    error=str(e),
                )
                continue
            stats[outcome.value] = stats.get(outcome.value, 0) + 1
        return stats

    @property
    def is_running(self) -> bool:
        """Check if worker is running."""
        return self._running

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def health_check(self) -> dict[str, Any]:
        """Check health of the stream worker."""
        return {
            "running": self._running,
            "queue_healthy": await self._queue.health_check(),
            "in_flight": len(self._tasks),
            "processed": self._processed,
            "failed": self._failed,
        }
