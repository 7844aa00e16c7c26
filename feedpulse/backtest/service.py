"""
Backtest service - replays historical content through a stream.

A backtest is created against a stream and a half-open creation-time
window ``[range_start, range_end)``. ``run`` moves it to RUNNING and
executes it in a background task: every content row in the window goes
through ``StreamProcessor.process_for_backtest`` in ascending creation
order and produces exactly one BacktestResult. Nothing is dispatched.

Lifecycle:
    create() -> PENDING
    run()    -> RUNNING (task spawned, returns immediately)
    task     -> COMPLETED, or FAILED on an outer error or cancellation
"""

import asyncio
import time
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any

import structlog

from feedpulse.backtest.config import BacktestConfig
from feedpulse.backtest.repository import BacktestRepository
from feedpulse.backtest.schemas import (
    Backtest,
    BacktestResult,
    BacktestResultsPage,
    BacktestStatus,
    ResultStatus,
)
from feedpulse.errors import ConflictError, InvalidRequestError, NotFoundError
from feedpulse.observability.metrics import get_metrics
from feedpulse.storage.repository import ContentRepository
from feedpulse.streams.processor import StreamProcessor
from feedpulse.streams.repository import StreamRepository

logger = structlog.get_logger(__name__)


class BacktestService:
    """
    Creates, runs and reports on stream backtests.

    Usage:
        service = BacktestService(backtests, streams, contents, processor)
        backtest = await service.create(stream_id, start, end)
        await service.run(backtest.id)
        await service.wait_for(backtest.id)
    """

    def __init__(
        self,
        backtests: BacktestRepository,
        streams: StreamRepository,
        contents: ContentRepository,
        processor: StreamProcessor,
        config: BacktestConfig | None = None,
    ):
        self._backtests = backtests
        self._streams = streams
        self._contents = contents
        self._processor = processor
        self._config = config or BacktestConfig()
        self._slots = asyncio.Semaphore(self._config.max_concurrent_runs)
        self._tasks: dict[str, asyncio.Task] = {}
        self._started: set[str] = set()

    async def create(
        self,
        stream_id: str,
        range_start: datetime,
        range_end: datetime,
        name: str | None = None,
        description: str | None = None,
        config: dict[str, Any] | None = None,
    ) -> Backtest:
        """
        Create a PENDING backtest.

        Raises:
            NotFoundError: Unknown stream.
            InvalidRequestError: Empty or inverted window, or no content in it.
        """
        stream = await self._streams.get_by_id(stream_id)
        if stream is None:
            raise NotFoundError("Stream not found", stream_id=stream_id)

        if range_start >= range_end:
            raise InvalidRequestError(
                "Start time must be before end time",
                range_start=range_start.isoformat(),
                range_end=range_end.isoformat(),
            )

        total_items = await self._contents.count_in_range(
            stream.source_id, range_start, range_end
        )
        if total_items == 0:
            raise InvalidRequestError("No content found in the specified date range")

        backtest = await self._backtests.create(
            stream_id=stream_id,
            range_start=range_start,
            range_end=range_end,
            total_items=total_items,
            name=name,
            description=description,
            config=config,
        )
        logger.info(
            "Backtest created",
            backtest_id=backtest.id,
            stream_id=stream_id,
            total_items=total_items,
        )
        return backtest

    async def get(self, backtest_id: str) -> Backtest:
        """Raises NotFoundError for an unknown id."""
        backtest = await self._backtests.get_by_id(backtest_id)
        if backtest is None:
            raise NotFoundError("Backtest not found", backtest_id=backtest_id)
        return backtest

    async def list_backtests(
        self,
        stream_id: str | None = None,
        limit: int = 50,
    ) -> list[Backtest]:
        return await self._backtests.list_backtests(stream_id=stream_id, limit=limit)

    async def get_results(
        self,
        backtest_id: str,
        page: int = 1,
        limit: int = 50,
    ) -> BacktestResultsPage:
        """One page of results ordered by creation time."""
        await self.get(backtest_id)
        if page < 1 or not 1 <= limit <= self._config.max_results_page_size:
            raise InvalidRequestError(
                "Invalid pagination",
                page=page,
                limit=limit,
            )

        results = await self._backtests.list_results(
            backtest_id, offset=(page - 1) * limit, limit=limit
        )
        total = await self._backtests.count_results(backtest_id)
        return BacktestResultsPage(results=results, total=total, page=page, limit=limit)

    async def run(self, backtest_id: str) -> str:
        """
        Start a PENDING backtest in the background.

        Returns:
            The backtest id, as soon as the task is spawned.

        Raises:
            NotFoundError: Unknown backtest.
            ConflictError: Backtest is RUNNING, COMPLETED or FAILED.
        """
        backtest = await self.get(backtest_id)
        if backtest.status != BacktestStatus.PENDING:
            raise ConflictError(
                f"Backtest is {backtest.status.value.lower()}",
                backtest_id=backtest_id,
                status=backtest.status.value,
            )

        if not await self._backtests.mark_running(backtest_id, datetime.now(timezone.utc)):
            # Another caller won the PENDING -> RUNNING transition
            raise ConflictError("Backtest is already running", backtest_id=backtest_id)

        task = asyncio.create_task(self._execute(backtest_id))
        self._tasks[backtest_id] = task
        task.add_done_callback(lambda t: self._on_task_done(backtest_id, t))

        logger.info("Backtest started", backtest_id=backtest_id)
        return backtest_id

    def _on_task_done(self, backtest_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(backtest_id, None)
        self._started.discard(backtest_id)
        if task.cancelled():
            logger.warning("Backtest task cancelled", backtest_id=backtest_id)
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Backtest task crashed",
                backtest_id=backtest_id,
                error=str(exc),
            )

    async def _execute(self, backtest_id: str) -> None:
        self._started.add(backtest_id)
        try:
            async with self._slots:
                processed = await self._replay(backtest_id)
        except asyncio.CancelledError:
            # The row is already RUNNING; a cancelled task must not leave it there
            logger.warning("Backtest cancelled", backtest_id=backtest_id)
            await self._backtests.mark_failed(
                backtest_id, "cancelled", datetime.now(timezone.utc)
            )
            raise
        except Exception as e:
            logger.error("Backtest failed", backtest_id=backtest_id, error=str(e))
            await self._backtests.mark_failed(
                backtest_id, str(e), datetime.now(timezone.utc)
            )
            return
        await self._backtests.mark_completed(
            backtest_id, processed, datetime.now(timezone.utc)
        )
        logger.info(
            "Backtest completed",
            backtest_id=backtest_id,
            processed_items=processed,
        )

    async def _replay(self, backtest_id: str) -> int:
        """Run every item in the window; returns the number processed."""
        backtest = await self.get(backtest_id)
        stream = await self._streams.get_by_id(backtest.stream_id)
        if stream is None:
            raise NotFoundError("Stream not found", stream_id=backtest.stream_id)

        contents = await self._contents.list_in_range(
            stream.source_id, backtest.range_start, backtest.range_end
        )

        metrics = get_metrics()
        processed = 0
        for content in contents:
            start = time.perf_counter()
            try:
                outcome = await self._processor.process_for_backtest(
                    stream, content, backtest_id
                )
                result = BacktestResult(
                    backtest_id=backtest_id,
                    content_id=content.id,
                    status=ResultStatus.SUCCESS,
                    output=asdict(outcome),
                )
            except Exception as e:
                result = BacktestResult(
                    backtest_id=backtest_id,
                    content_id=content.id,
                    status=ResultStatus.FAILURE,
                    error_message=str(e),
                )
            result.execution_time_ms = int((time.perf_counter() - start) * 1000)

            await self._backtests.add_result(result)
            metrics.backtest_items.labels(status=result.status.value).inc()

            processed += 1
            if processed % self._config.progress_update_every == 0:
                await self._backtests.update_progress(backtest_id, processed)

        return processed

    async def wait_for(self, backtest_id: str) -> Backtest:
        """Block until a run started by this service finishes; returns the final row."""
        task = self._tasks.get(backtest_id)
        if task is not None:
            await asyncio.wait({task})
        return await self.get(backtest_id)

    async def delete(self, backtest_id: str) -> None:
        """
        Raises:
            NotFoundError: Unknown backtest.
            ConflictError: Backtest is RUNNING.
        """
        backtest = await self.get(backtest_id)
        if backtest.status == BacktestStatus.RUNNING:
            raise ConflictError("Cannot delete a running backtest", backtest_id=backtest_id)
        if not await self._backtests.delete(backtest_id):
            raise ConflictError("Backtest changed state during delete", backtest_id=backtest_id)

    @property
    def active_runs(self) -> list[str]:
        return list(self._tasks)

    async def shutdown(self) -> None:
        """Cancel in-flight runs; each ends FAILED with ``cancelled``."""
        runs = list(self._tasks.items())
        # A task cancelled before its first step never reaches _execute's handler
        unstarted = [bid for bid, _ in runs if bid not in self._started]
        for _, task in runs:
            task.cancel()
        if runs:
            await asyncio.gather(*(task for _, task in runs), return_exceptions=True)
        for backtest_id in unstarted:
            await self._backtests.mark_failed(
                backtest_id, "cancelled", datetime.now(timezone.utc)
            )
