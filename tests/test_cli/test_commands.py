"""Tests for the feedpulse CLI."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from feedpulse.backtest.schemas import (
    Backtest,
    BacktestResult,
    BacktestResultsPage,
    BacktestStatus,
    ResultStatus,
)
from feedpulse.cli import main
from feedpulse.digest.aggregator import DigestTickResult
from feedpulse.errors import ConflictError
from feedpulse.polling.scheduler import PollSweepResult
from feedpulse.streams.presets import get_preset
from feedpulse.streams.schemas import Stream


# ── Fixtures ──────────────────────────────────────────────


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def ctx(sample_source, sample_stream):
    """AppContext stand-in with async repositories and services."""
    context = MagicMock()
    context.close = AsyncMock()
    context.sources = AsyncMock()
    context.sources.create = AsyncMock(return_value=sample_source)
    context.sources.get_by_id = AsyncMock(return_value=sample_source)
    context.sources.list_sources = AsyncMock(return_value=[sample_source])
    context.streams = AsyncMock()
    context.streams.create = AsyncMock(return_value=sample_stream)
    context.streams.list_streams = AsyncMock(return_value=[sample_stream])
    context.adapters = MagicMock()
    context.adapters.get.return_value.validate_config.return_value = []
    context.scheduler = AsyncMock()
    context.digest = AsyncMock()
    context.backtest_service = AsyncMock()
    return context


@pytest.fixture
def invoke(runner, ctx):
    def _invoke(*args: str):
        with patch("feedpulse.cli.build_app_context", AsyncMock(return_value=ctx)), \
             patch("feedpulse.cli.setup_logging"):
            return runner.invoke(main, list(args))
    return _invoke


def _backtest(status=BacktestStatus.PENDING) -> Backtest:
    return Backtest(
        id="bt-1",
        stream_id="stream-1",
        name="week 1",
        range_start=datetime(2025, 1, 1, tzinfo=timezone.utc),
        range_end=datetime(2025, 1, 8, tzinfo=timezone.utc),
        status=status,
        total_items=4,
        processed_items=2,
    )


# ── sources ──────────────────────────────────────────────


class TestSources:
    def test_add(self, invoke, ctx):
        result = invoke("sources", "add", "rss", "https://hnrss.org/frontpage")

        assert result.exit_code == 0, result.output
        assert "Created source src-1" in result.output
        ctx.sources.create.assert_awaited_once_with("rss", "https://hnrss.org/frontpage", {})
        ctx.close.assert_awaited_once()

    def test_add_with_config(self, invoke, ctx):
        result = invoke("sources", "add", "reddit", "python", "--config", '{"sort": "top"}')

        assert result.exit_code == 0, result.output
        assert ctx.sources.create.call_args.args[2] == {"sort": "top"}

    def test_add_invalid_config_json(self, invoke):
        result = invoke("sources", "add", "reddit", "python", "--config", "[1]")

        assert result.exit_code == 2
        assert "must be a JSON object" in result.output

    def test_add_rejected_by_adapter(self, invoke, ctx):
        ctx.adapters.get.return_value.validate_config.return_value = ["bad identifier"]

        result = invoke("sources", "add", "rss", "not-a-url")

        assert result.exit_code == 1
        assert '"error": "invalid_request"' in result.output
        ctx.sources.create.assert_not_called()

    def test_list(self, invoke):
        result = invoke("sources", "list")

        assert result.exit_code == 0
        assert "src-1" in result.output
        assert "https://hnrss.org/frontpage" in result.output


# ── streams ──────────────────────────────────────────────


class TestStreams:
    def test_presets(self, invoke):
        result = invoke("streams", "presets")

        assert result.exit_code == 0
        assert "ai-news" in result.output

    def test_add_from_preset(self, invoke, ctx):
        result = invoke(
            "streams", "add", "src-1", "AI news",
            "--preset", "ai-news", "--recipient", "12345", "--model", "gpt-4o",
        )

        assert result.exit_code == 0, result.output
        kwargs = ctx.streams.create.call_args.kwargs
        preset = get_preset("ai-news")
        assert kwargs["prompt_template"] == preset.prompt_template()
        assert kwargs["notification_config"] == {
            "enabled": True,
            "channel": "telegram",
            "recipient": "12345",
        }
        assert kwargs["llm_config"] == {"model": "gpt-4o"}
        assert kwargs["aggregation_config"] == {}

    def test_add_digest(self, invoke, ctx):
        result = invoke(
            "streams", "add", "src-1", "Brief",
            "--channel", "slack", "--digest-schedule", "0 8 * * *",
        )

        assert result.exit_code == 0, result.output
        assert ctx.streams.create.call_args.kwargs["aggregation_config"] == {
            "type": "digest",
            "schedule": "0 8 * * *",
        }

    def test_add_unknown_preset(self, invoke, ctx):
        result = invoke("streams", "add", "src-1", "x", "--preset", "nope")

        assert result.exit_code == 2
        ctx.streams.create.assert_not_called()

    def test_add_unknown_source(self, invoke, ctx):
        ctx.sources.get_by_id.return_value = None

        result = invoke("streams", "add", "missing", "x")

        assert result.exit_code == 1
        assert '"error": "not_found"' in result.output

    def test_list(self, invoke, ctx):
        ctx.streams.list_streams.return_value = [
            Stream(id="stream-9", source_id="src-1", name="Digest",
                   aggregation_config={"type": "digest"}),
        ]

        result = invoke("streams", "list")

        assert result.exit_code == 0
        assert "stream-9" in result.output
        assert "digest" in result.output


# ── services ─────────────────────────────────────────────


class TestServiceCommands:
    def test_poll_once(self, invoke, ctx):
        ctx.scheduler.sweep.return_value = PollSweepResult(
            sources_polled=2, sources_failed=1, items_created=5, jobs_enqueued=7,
            errors=["src-bad: boom"],
        )

        result = invoke("poll", "--once")

        assert result.exit_code == 0
        assert "polled=2 failed=1 created=5 jobs=7" in result.output
        assert "src-bad: boom" in result.output

    def test_poll_single_source(self, invoke, ctx):
        ctx.scheduler.poll_source.return_value = MagicMock(
            items_fetched=3, items_created=1, duplicates=2, jobs_enqueued=1
        )

        result = invoke("poll", "--source", "src-1")

        assert result.exit_code == 0
        ctx.scheduler.poll_source.assert_awaited_once_with("src-1")
        assert "fetched=3 created=1 duplicates=2 jobs=1" in result.output

    def test_digest_once(self, invoke, ctx):
        ctx.digest.tick.return_value = DigestTickResult(
            streams_checked=3, initialized=1, digests_generated=1, notifications_sent=1
        )

        result = invoke("digest", "--once")

        assert result.exit_code == 0
        assert "checked=3 initialized=1 generated=1 sent=1 failed=0" in result.output


# ── backtest ─────────────────────────────────────────────


class TestBacktest:
    def test_create(self, invoke, ctx):
        ctx.backtest_service.create.return_value = _backtest()

        result = invoke(
            "backtest", "create", "stream-1",
            "--start", "2025-01-01", "--end", "2025-01-08", "--name", "week 1",
        )

        assert result.exit_code == 0, result.output
        args = ctx.backtest_service.create.call_args.args
        assert args == (
            "stream-1",
            datetime(2025, 1, 1, tzinfo=timezone.utc),
            datetime(2025, 1, 8, tzinfo=timezone.utc),
        )
        assert "Status:     PENDING" in result.output

    def test_run_waits_for_result(self, invoke, ctx):
        ctx.backtest_service.wait_for.return_value = _backtest(BacktestStatus.COMPLETED)

        result = invoke("backtest", "run", "bt-1")

        assert result.exit_code == 0
        ctx.backtest_service.run.assert_awaited_once_with("bt-1")
        ctx.backtest_service.wait_for.assert_awaited_once_with("bt-1")
        assert "COMPLETED" in result.output
        ctx.close.assert_awaited_once()

    def test_run_cannot_detach(self, invoke, ctx):
        result = invoke("backtest", "run", "bt-1", "--no-wait")

        assert result.exit_code == 2
        ctx.backtest_service.run.assert_not_called()

    def test_run_conflict(self, invoke, ctx):
        ctx.backtest_service.run.side_effect = ConflictError(
            "Backtest is completed", backtest_id="bt-1"
        )

        result = invoke("backtest", "run", "bt-1")

        assert result.exit_code == 1
        assert '"error": "conflict"' in result.output

    def test_results_json(self, invoke, ctx):
        ctx.backtest_service.get_results.return_value = BacktestResultsPage(
            results=[
                BacktestResult(
                    backtest_id="bt-1",
                    content_id="content-1",
                    status=ResultStatus.SUCCESS,
                    output={"triggered": True},
                    id="1",
                )
            ],
            total=1,
            page=1,
            limit=50,
        )

        result = invoke("backtest", "results", "bt-1", "--json")

        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["total"] == 1
        assert payload["data"][0]["status"] == "SUCCESS"

    def test_delete(self, invoke, ctx):
        result = invoke("backtest", "delete", "bt-1")

        assert result.exit_code == 0
        ctx.backtest_service.delete.assert_awaited_once_with("bt-1")
