"""Tests for PollingScheduler."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from feedpulse.errors import NotFoundError, UnknownSourceTypeError
from feedpulse.ingestion.schemas import ContentItem
from feedpulse.polling.config import PollingConfig
from feedpulse.polling.scheduler import PollingScheduler
from feedpulse.sources.schemas import Source
from feedpulse.streams.schemas import Stream


@pytest.fixture
def mock_sources(sample_source) -> AsyncMock:
    repo = AsyncMock()
    repo.list_stale = AsyncMock(return_value=[sample_source])
    repo.get_by_id = AsyncMock(return_value=sample_source)
    repo.mark_polled = AsyncMock()
    return repo


@pytest.fixture
def mock_registry(sample_item) -> AsyncMock:
    registry = AsyncMock()
    registry.fetch = AsyncMock(return_value=[sample_item])
    return registry


@pytest.fixture
def mock_queue() -> AsyncMock:
    queue = AsyncMock()
    queue.enqueue = AsyncMock(return_value="1-0")
    return queue


@pytest.fixture
def scheduler(mock_registry, mock_sources, mock_contents, mock_streams, mock_queue):
    return PollingScheduler(
        registry=mock_registry,
        sources=mock_sources,
        contents=mock_contents,
        streams=mock_streams,
        queue=mock_queue,
        config=PollingConfig(stale_after_seconds=300, max_sources_per_sweep=25),
    )


# ── Single source ───────────────────────────────────────


class TestPollSource:
    @pytest.mark.asyncio
    async def test_fetch_uses_watermark(self, scheduler, mock_registry, sample_source):
        await scheduler.poll_source("src-1")

        mock_registry.fetch.assert_awaited_once_with(
            "rss",
            "https://hnrss.org/frontpage",
            {},
            since=datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc),
        )

    @pytest.mark.asyncio
    async def test_new_item_creates_content_and_jobs(
        self, scheduler, mock_contents, mock_queue, sample_item
    ):
        result = await scheduler.poll_source("src-1")

        assert result.items_fetched == 1
        assert result.items_created == 1
        assert result.jobs_enqueued == 1
        mock_contents.exists.assert_awaited_once_with("src-1", sample_item.external_id)
        mock_contents.create.assert_awaited_once_with("src-1", sample_item)
        job = mock_queue.enqueue.call_args.args[0]
        assert (job.stream_id, job.content_id) == ("stream-1", "content-1")

    @pytest.mark.asyncio
    async def test_one_job_per_active_stream(
        self, scheduler, mock_streams, mock_queue, sample_stream
    ):
        other = Stream(
            id="stream-2", source_id="src-1", name="Other"
        )
        mock_streams.list_active_by_source.return_value = [sample_stream, other]

        result = await scheduler.poll_source("src-1")

        assert result.jobs_enqueued == 2
        assert [c.args[0].stream_id for c in mock_queue.enqueue.call_args_list] == [
            "stream-1",
            other.id,
        ]

    @pytest.mark.asyncio
    async def test_existing_item_is_duplicate(self, scheduler, mock_contents, mock_queue):
        mock_contents.exists.return_value = True

        result = await scheduler.poll_source("src-1")

        assert result.duplicates == 1
        assert result.items_created == 0
        mock_contents.create.assert_not_called()
        mock_queue.enqueue.assert_not_called()

    @pytest.mark.asyncio
    async def test_lost_insert_race_is_duplicate(self, scheduler, mock_contents, mock_queue):
        mock_contents.create.return_value = None

        result = await scheduler.poll_source("src-1")

        assert result.duplicates == 1
        mock_queue.enqueue.assert_not_called()

    @pytest.mark.asyncio
    async def test_watermark_advances(self, scheduler, mock_sources):
        before = datetime.now(timezone.utc)

        await scheduler.poll_source("src-1")

        source_id, polled_at = mock_sources.mark_polled.call_args.args
        assert source_id == "src-1"
        assert polled_at >= before

    @pytest.mark.asyncio
    async def test_empty_fetch_still_advances_watermark(
        self, scheduler, mock_registry, mock_sources, mock_streams
    ):
        mock_registry.fetch.return_value = []

        result = await scheduler.poll_source("src-1")

        assert result.items_fetched == 0
        mock_streams.list_active_by_source.assert_not_called()
        mock_sources.mark_polled.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_item_error_is_isolated(
        self, scheduler, mock_registry, mock_contents, sample_item
    ):
        second = ContentItem(external_id="post-2", raw_content="second")
        mock_registry.fetch.return_value = [sample_item, second]
        mock_contents.create.side_effect = [RuntimeError("constraint"), mock_contents.create.return_value]

        result = await scheduler.poll_source("src-1")

        assert result.item_errors == 1
        assert result.items_created == 1

    @pytest.mark.asyncio
    async def test_unknown_source(self, scheduler, mock_sources):
        mock_sources.get_by_id.return_value = None

        with pytest.raises(NotFoundError):
            await scheduler.poll_source("missing")


# ── Sweep ───────────────────────────────────────────────


class TestSweep:
    @pytest.mark.asyncio
    async def test_lists_stale_sources(self, scheduler, mock_sources):
        before = datetime.now(timezone.utc)

        result = await scheduler.sweep()

        cutoff = mock_sources.list_stale.call_args.args[0]
        assert (before - cutoff).total_seconds() == pytest.approx(300, abs=5)
        assert mock_sources.list_stale.call_args.kwargs == {"limit": 25}
        assert result.sources_polled == 1
        assert result.items_created == 1
        assert result.jobs_enqueued == 1

    @pytest.mark.asyncio
    async def test_failed_source_does_not_stop_sweep(
        self, scheduler, mock_sources, mock_registry, sample_source, sample_item
    ):
        broken = Source(id="src-bad", type="myspace", identifier="x")
        mock_sources.list_stale.return_value = [broken, sample_source]
        mock_registry.fetch.side_effect = [UnknownSourceTypeError("myspace"), [sample_item]]

        result = await scheduler.sweep()

        assert result.sources_failed == 1
        assert result.sources_polled == 1
        assert result.errors[0].startswith("src-bad:")
        # Failed source keeps its watermark
        assert [c.args[0] for c in mock_sources.mark_polled.call_args_list] == ["src-1"]

    @pytest.mark.asyncio
    async def test_overlapping_sweep_skipped(self, scheduler, mock_registry):
        release = asyncio.Event()

        async def slow_fetch(*args, **kwargs):
            await release.wait()
            return []

        mock_registry.fetch.side_effect = slow_fetch

        first = asyncio.create_task(scheduler.sweep())
        await asyncio.sleep(0)
        second = await scheduler.sweep()
        release.set()
        await first

        assert second.skipped is True

    @pytest.mark.asyncio
    async def test_stop(self, scheduler):
        scheduler._running = True
        await scheduler.stop()
        assert not scheduler.is_running
