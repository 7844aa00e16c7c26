"""
Command-line interface for feedpulse.

Provides commands to run the pipeline services, manage sources, streams
and backtests, initialize the database, and run diagnostic checks.

Usage:
    feedpulse init-db            # Create tables
    feedpulse poll [--once]      # Run the polling scheduler
    feedpulse worker             # Run the stream worker
    feedpulse digest [--once]    # Run the digest aggregator
    feedpulse run                # Run poll, worker and digest together
    feedpulse health             # Check dependencies and registries
"""

import asyncio
import json
import signal
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import Any, TypeVar

import click

from feedpulse.app import AppContext, build_app_context
from feedpulse.config.settings import get_settings
from feedpulse.errors import FeedPulseError, InvalidRequestError, NotFoundError
from feedpulse.observability.logging import setup_logging
from feedpulse.observability.metrics import get_metrics
from feedpulse.streams.presets import STREAM_PRESETS, get_preset

T = TypeVar("T")

_DATETIME_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S"]


def _run_with_context(
    fn: Callable[[AppContext], Awaitable[T]],
    with_redis: bool = True,
) -> T:
    """Build the app context, run ``fn`` and render FeedPulseError as JSON (exit 1)."""

    async def runner() -> T:
        ctx = await build_app_context(with_redis=with_redis)
        try:
            return await fn(ctx)
        finally:
            await ctx.close()

    try:
        return asyncio.run(runner())
    except FeedPulseError as e:
        click.echo(json.dumps(e.to_dict(), indent=2, default=str), err=True)
        sys.exit(1)


def _install_signal_handlers(stop: Callable[[], Awaitable[None]]) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda: asyncio.create_task(stop()))


def _utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _parse_json_option(value: str | None, name: str) -> dict[str, Any]:
    if not value:
        return {}
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"invalid JSON: {e}", param_hint=name)
    if not isinstance(parsed, dict):
        raise click.BadParameter("must be a JSON object", param_hint=name)
    return parsed


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """feedpulse - feed ingestion, LLM triggers and notifications."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from feedpulse.storage.schema import create_tables

    async def run(ctx: AppContext) -> None:
        await create_tables(ctx.database)
        click.echo("Database initialized successfully")

    _run_with_context(run, with_redis=False)


@main.command()
@click.option("--once", is_flag=True, help="Run a single sweep and exit")
@click.option("--source", "source_id", default=None, help="Poll only this source id")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
def poll(once: bool, source_id: str | None, metrics: bool) -> None:
    """Run the polling scheduler."""

    async def run(ctx: AppContext) -> None:
        scheduler = ctx.scheduler
        if source_id:
            result = await scheduler.poll_source(source_id)
            click.echo(
                f"Polled {source_id}: fetched={result.items_fetched} "
                f"created={result.items_created} duplicates={result.duplicates} "
                f"jobs={result.jobs_enqueued}"
            )
            return

        if once:
            sweep = await scheduler.sweep()
            click.echo(
                f"Sweep: polled={sweep.sources_polled} failed={sweep.sources_failed} "
                f"created={sweep.items_created} jobs={sweep.jobs_enqueued}"
            )
            for error in sweep.errors:
                click.echo(click.style(f"  ✗ {error}", fg="red"))
            return

        if metrics:
            get_metrics().start_server()
        _install_signal_handlers(scheduler.stop)
        await scheduler.run_forever()

    _run_with_context(run)


@main.command()
@click.option("--concurrency", default=None, type=int, help="Jobs processed concurrently")
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def worker(concurrency: int | None, metrics: bool, metrics_port: int | None) -> None:
    """Run the stream worker."""
    from feedpulse.streams.worker import StreamWorker

    async def run(ctx: AppContext) -> None:
        stream_worker = ctx.worker
        if concurrency:
            stream_worker = StreamWorker(ctx.queue, ctx.processor, concurrency=concurrency)
        if metrics:
            get_metrics().start_server(port=metrics_port)
        _install_signal_handlers(stream_worker.stop)
        await stream_worker.start()

    _run_with_context(run)


@main.command()
@click.option("--once", is_flag=True, help="Run a single tick and exit")
def digest(once: bool) -> None:
    """Run the digest aggregator."""

    async def run(ctx: AppContext) -> None:
        if once:
            result = await ctx.digest.tick()
            click.echo(
                f"Digest tick: checked={result.streams_checked} "
                f"initialized={result.initialized} generated={result.digests_generated} "
                f"sent={result.notifications_sent} failed={result.failed}"
            )
            return

        _install_signal_handlers(ctx.digest.stop)
        await ctx.digest.run_forever()

    _run_with_context(run)


@main.command("run")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def run_all(metrics_port: int | None) -> None:
    """Run polling, the stream worker and digests in one process."""

    async def run(ctx: AppContext) -> None:
        get_metrics().start_server(port=metrics_port)

        async def shutdown() -> None:
            await ctx.scheduler.stop()
            await ctx.worker.stop()
            await ctx.digest.stop()

        _install_signal_handlers(shutdown)

        await asyncio.gather(
            ctx.scheduler.run_forever(),
            ctx.worker.start(),
            ctx.digest.run_forever(),
        )

    _run_with_context(run)


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import redis.asyncio as redis
    import structlog

    from feedpulse.ingestion.registry import create_default_registry
    from feedpulse.llm.registry import create_llm_registry
    from feedpulse.notifications.dispatcher import create_dispatcher
    from feedpulse.storage.database import Database

    logger = structlog.get_logger()

    async def check() -> None:
        settings = get_settings()
        results: dict[str, bool] = {}

        # Check Redis
        try:
            client = redis.from_url(str(settings.redis_url))
            results["redis"] = bool(await client.ping())
            await client.aclose()
        except Exception as e:
            results["redis"] = False
            logger.error("Redis health check failed", error=str(e))

        # Check PostgreSQL
        try:
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if not status:
                all_healthy = False

        llm = create_llm_registry()
        click.echo(f"  adapters:  {', '.join(create_default_registry(settings).available_types())}")
        click.echo(f"  llm:       {', '.join(llm.available_providers()) or '(none configured)'}")
        click.echo(f"  channels:  {', '.join(create_dispatcher().available_channels())}")
        await llm.close()

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


# ── Sources ──────────────────────────────────────────────


@main.group()
def sources() -> None:
    """Source management commands."""


@sources.command("add")
@click.argument("source_type")
@click.argument("identifier")
@click.option("--config", "config_json", default=None, help="Adapter config as a JSON object")
def sources_add(source_type: str, identifier: str, config_json: str | None) -> None:
    """Register a source after validating it against its adapter.

    Example:
        feedpulse sources add rss https://hnrss.org/frontpage
        feedpulse sources add github python/cpython:releases
    """
    config = _parse_json_option(config_json, "--config")

    async def run(ctx: AppContext) -> None:
        adapter = ctx.adapters.get(source_type)
        errors = adapter.validate_config(identifier, config)
        if errors:
            raise InvalidRequestError(
                "Invalid source configuration",
                source_type=source_type,
                errors=errors,
            )
        source = await ctx.sources.create(source_type, identifier, config)
        click.echo(f"Created source {source.id} ({source.type}:{source.identifier})")

    _run_with_context(run, with_redis=False)


@sources.command("list")
@click.option("--type", "source_type", default=None, help="Filter by adapter tag")
@click.option("--limit", default=50, help="Maximum sources to list")
def sources_list(source_type: str | None, limit: int) -> None:
    """List registered sources."""

    async def run(ctx: AppContext) -> None:
        rows = await ctx.sources.list_sources(source_type=source_type, limit=limit)
        if not rows:
            click.echo("No sources")
            return
        click.echo(f"{'ID':<38} {'TYPE':<10} {'LAST POLLED':<26} IDENTIFIER")
        for source in rows:
            polled = source.last_polled_at.isoformat() if source.last_polled_at else "never"
            click.echo(f"{source.id:<38} {source.type:<10} {polled:<26} {source.identifier}")

    _run_with_context(run, with_redis=False)


# ── Streams ──────────────────────────────────────────────


@main.group()
def streams() -> None:
    """Stream management commands."""


@streams.command("presets")
def streams_presets() -> None:
    """List built-in stream presets."""
    for preset in STREAM_PRESETS:
        click.echo(f"{preset.id:<22} {preset.category:<14} {preset.name}")
        click.echo(f"{'':<22} {preset.description}")


@streams.command("add")
@click.argument("source_id")
@click.argument("name")
@click.option("--preset", "preset_id", default=None, help="Start from a built-in preset")
@click.option("--trigger-prompt", default=None, help="Trigger check template")
@click.option("--notification-prompt", default=None, help="Notification render template")
@click.option("--channel", default=None, help="Notification channel (telegram, discord, slack, webhook)")
@click.option("--recipient", default=None, help="Chat id or webhook URL")
@click.option("--provider", default=None, help="LLM provider name")
@click.option("--model", default=None, help="LLM model name")
@click.option("--digest-schedule", default=None, help="Make this a digest stream ('minute hour * * *')")
def streams_add(
    source_id: str,
    name: str,
    preset_id: str | None,
    trigger_prompt: str | None,
    notification_prompt: str | None,
    channel: str | None,
    recipient: str | None,
    provider: str | None,
    model: str | None,
    digest_schedule: str | None,
) -> None:
    """Create a stream on a source.

    Example:
        feedpulse streams add <source-id> "AI news" --preset ai-news --recipient 12345
    """
    prompt_template: dict[str, Any] = {}
    notification_config: dict[str, Any] = {"enabled": True}
    if preset_id:
        preset = get_preset(preset_id)
        if preset is None:
            raise click.BadParameter(f"unknown preset {preset_id!r}", param_hint="--preset")
        prompt_template.update(preset.prompt_template())
        notification_config.update(preset.notification_config())

    if trigger_prompt is not None:
        prompt_template["trigger_prompt"] = trigger_prompt
    if notification_prompt is not None:
        prompt_template["notification_prompt"] = notification_prompt
    if channel:
        notification_config["channel"] = channel
    if recipient:
        notification_config["recipient"] = recipient

    llm_config = {k: v for k, v in (("provider", provider), ("model", model)) if v}
    aggregation_config: dict[str, Any] = {}
    if digest_schedule:
        aggregation_config = {"type": "digest", "schedule": digest_schedule}

    async def run(ctx: AppContext) -> None:
        if await ctx.sources.get_by_id(source_id) is None:
            raise NotFoundError("Source not found", source_id=source_id)
        stream = await ctx.streams.create(
            source_id=source_id,
            name=name,
            prompt_template=prompt_template,
            notification_config=notification_config,
            llm_config=llm_config,
            aggregation_config=aggregation_config,
        )
        click.echo(f"Created stream {stream.id} ({stream.name}) on source {source_id}")

    _run_with_context(run, with_redis=False)


@streams.command("list")
@click.option("--source", "source_id", default=None, help="Filter by source id")
@click.option("--limit", default=50, help="Maximum streams to list")
def streams_list(source_id: str | None, limit: int) -> None:
    """List streams."""

    async def run(ctx: AppContext) -> None:
        rows = await ctx.streams.list_streams(source_id=source_id, limit=limit)
        if not rows:
            click.echo("No streams")
            return
        for stream in rows:
            kind = "digest" if stream.is_digest else "live"
            click.echo(
                f"{stream.id:<38} {stream.status:<7} {kind:<7} "
                f"{stream.channel:<9} {stream.llm.label:<28} {stream.name}"
            )

    _run_with_context(run, with_redis=False)


# ── Backtests ────────────────────────────────────────────


@main.group()
def backtest() -> None:
    """Backtest commands."""


def _echo_backtest(bt: Any) -> None:
    click.echo(f"Backtest {bt.id}")
    click.echo("=" * 50)
    click.echo(f"  Stream:     {bt.stream_id}")
    if bt.name:
        click.echo(f"  Name:       {bt.name}")
    click.echo(f"  Window:     {bt.range_start.isoformat()} -> {bt.range_end.isoformat()}")
    click.echo(f"  Status:     {bt.status.value}")
    click.echo(f"  Progress:   {bt.processed_items}/{bt.total_items} ({bt.progress:.0%})")
    if bt.error_message:
        click.echo(click.style(f"  Error:      {bt.error_message}", fg="red"))


@backtest.command("create")
@click.argument("stream_id")
@click.option("--start", "start", required=True, type=click.DateTime(formats=_DATETIME_FORMATS),
              help="Window start (inclusive, UTC)")
@click.option("--end", "end", required=True, type=click.DateTime(formats=_DATETIME_FORMATS),
              help="Window end (exclusive, UTC)")
@click.option("--name", default=None, help="Backtest name")
@click.option("--description", default=None, help="Backtest description")
def backtest_create(
    stream_id: str,
    start: datetime,
    end: datetime,
    name: str | None,
    description: str | None,
) -> None:
    """Create a PENDING backtest over [start, end).

    Example:
        feedpulse backtest create <stream-id> --start 2025-01-01 --end 2025-02-01
    """

    async def run(ctx: AppContext) -> None:
        bt = await ctx.backtest_service.create(
            stream_id, _utc(start), _utc(end), name=name, description=description
        )
        _echo_backtest(bt)

    _run_with_context(run, with_redis=False)


@backtest.command("run")
@click.argument("backtest_id")
def backtest_run(backtest_id: str) -> None:
    """Run a PENDING backtest and wait for it to finish.

    The replay lives in this process; interrupting it marks the backtest
    FAILED rather than leaving it RUNNING.
    """

    async def run(ctx: AppContext) -> None:
        await ctx.backtest_service.run(backtest_id)
        click.echo(f"Backtest {backtest_id} started")
        _echo_backtest(await ctx.backtest_service.wait_for(backtest_id))

    _run_with_context(run, with_redis=False)


@backtest.command("status")
@click.argument("backtest_id")
def backtest_status(backtest_id: str) -> None:
    """Show backtest status and progress."""

    async def run(ctx: AppContext) -> None:
        _echo_backtest(await ctx.backtest_service.get(backtest_id))

    _run_with_context(run, with_redis=False)


@backtest.command("list")
@click.option("--stream", "stream_id", default=None, help="Filter by stream id")
@click.option("--limit", default=20, help="Maximum backtests to list")
def backtest_list(stream_id: str | None, limit: int) -> None:
    """List backtests, newest first."""

    async def run(ctx: AppContext) -> None:
        rows = await ctx.backtest_service.list_backtests(stream_id=stream_id, limit=limit)
        if not rows:
            click.echo("No backtests")
            return
        for bt in rows:
            click.echo(
                f"{bt.id:<38} {bt.status.value:<10} "
                f"{bt.processed_items:>5}/{bt.total_items:<5} {bt.name or ''}"
            )

    _run_with_context(run, with_redis=False)


@backtest.command("results")
@click.argument("backtest_id")
@click.option("--page", default=1, help="Page number (1-based)")
@click.option("--limit", default=50, help="Results per page")
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def backtest_results(backtest_id: str, page: int, limit: int, as_json: bool) -> None:
    """Show per-item backtest results in replay order."""

    async def run(ctx: AppContext) -> None:
        result_page = await ctx.backtest_service.get_results(backtest_id, page=page, limit=limit)
        if as_json:
            click.echo(json.dumps({
                "data": [r.to_dict() for r in result_page.results],
                "total": result_page.total,
                "page": result_page.page,
                "limit": result_page.limit,
            }, indent=2, default=str))
            return

        click.echo(f"Results {page}/{max(result_page.pages, 1)} (total {result_page.total})")
        for r in result_page.results:
            color = "green" if r.status.value == "SUCCESS" else "red"
            triggered = (r.output or {}).get("triggered")
            detail = f"triggered={triggered}" if r.error_message is None else r.error_message
            click.echo(
                click.style(f"  {r.status.value:<8}", fg=color)
                + f" {r.content_id:<38} {r.execution_time_ms:>6}ms  {detail}"
            )

    _run_with_context(run, with_redis=False)


@backtest.command("delete")
@click.argument("backtest_id")
def backtest_delete(backtest_id: str) -> None:
    """Delete a backtest that is not running."""

    async def run(ctx: AppContext) -> None:
        await ctx.backtest_service.delete(backtest_id)
        click.echo(f"Backtest {backtest_id} deleted")

    _run_with_context(run, with_redis=False)


if __name__ == "__main__":
    main()
