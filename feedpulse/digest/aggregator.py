"""
Digest aggregator - periodic LLM summaries of new content per stream.

Each tick walks the active digest streams. A stream seen for the first
time only gets its ``next_run`` initialised; a due stream folds every
content row created since its last run into one prompt, makes a single
LLM call, stores the output against the newest row and optionally sends
one notification. Content is read straight from storage; the work queue
is not involved.

At most ``max_items`` rows go into one digest. When a page comes back
full, ``last_run`` moves only to the newest row read and ``next_run`` is
left alone, so the next tick picks up the remainder as its own digest.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone

import structlog

from feedpulse.digest.config import DigestConfig
from feedpulse.digest.schedule import next_run_from_schedule
from feedpulse.ingestion.schemas import Content
from feedpulse.llm.base import CompletionOptions
from feedpulse.llm.registry import LLMRegistry
from feedpulse.notifications.dispatcher import NotificationDispatcher
from feedpulse.notifications.schemas import NotificationMessage
from feedpulse.observability.metrics import get_metrics
from feedpulse.storage.repository import ContentRepository
from feedpulse.streams.repository import LlmOutputRepository, StreamRepository
from feedpulse.streams.schemas import LlmOutput, Stream
from feedpulse.streams.templates import render_template

logger = structlog.get_logger(__name__)


@dataclass
class DigestTickResult:
    """Summary of one tick."""

    streams_checked: int = 0
    initialized: int = 0
    digests_generated: int = 0
    notifications_sent: int = 0
    failed: int = 0
    skipped: bool = False
    errors: list[str] = field(default_factory=list)


def format_digest_items(contents: list[Content]) -> str:
    """Render content rows as the numbered listing substituted for ``{{content}}``."""
    return "\n---\n".join(
        f"Item {i}:\n"
        f"Title: {content.title or 'No Title'}\n"
        f"Content: {content.raw_content}\n"
        f"Date: {content.posted_at.isoformat() if content.posted_at else ''}\n"
        for i, content in enumerate(contents, start=1)
    )


class DigestAggregator:
    """
    Cron-like digest generation for streams with ``aggregation_config.type == "digest"``.

    Usage:
        aggregator = DigestAggregator(streams, contents, llm_outputs, llm, dispatcher)
        await aggregator.tick()
        # or
        await aggregator.run_forever()
    """

    def __init__(
        self,
        streams: StreamRepository,
        contents: ContentRepository,
        llm_outputs: LlmOutputRepository,
        llm: LLMRegistry,
        dispatcher: NotificationDispatcher,
        config: DigestConfig | None = None,
    ):
        self._streams = streams
        self._contents = contents
        self._llm_outputs = llm_outputs
        self._llm = llm
        self._dispatcher = dispatcher
        self._config = config or DigestConfig()
        self._lock = asyncio.Lock()
        self._running = False

    async def tick(self, now: datetime | None = None) -> DigestTickResult:
        """Run one pass over all digest streams.

        A tick that starts while another is in progress is skipped.
        """
        if self._lock.locked():
            logger.info("Digest tick already in progress, skipping")
            return DigestTickResult(skipped=True)

        async with self._lock:
            now = now or datetime.now(timezone.utc)
            result = DigestTickResult()
            streams = await self._streams.list_active_digests()
            logger.info("Checking digest streams", count=len(streams))

            for stream in streams:
                result.streams_checked += 1
                try:
                    await self._process_stream(stream, now, result)
                except Exception as e:
                    result.failed += 1
                    get_metrics().digests_generated.labels(result="error").inc()
                    result.errors.append(f"{stream.id}: {e}")
                    logger.error(
                        "Failed to process digest",
                        stream_id=stream.id,
                        error=str(e),
                    )
            return result

    async def _process_stream(
        self,
        stream: Stream,
        now: datetime,
        result: DigestTickResult,
    ) -> None:
        schedule = stream.schedule or self._config.default_schedule

        if stream.next_run is None:
            next_run = next_run_from_schedule(schedule, now)
            await self._streams.update_schedule(stream.id, next_run)
            result.initialized += 1
            get_metrics().digests_generated.labels(result="initialized").inc()
            logger.info(
                "Initialized digest schedule",
                stream_id=stream.id,
                next_run=next_run.isoformat(),
            )
            return

        if now < stream.next_run:
            return

        since = stream.last_run or stream.created_at
        contents = await self._contents.list_created_after(
            stream.source_id, since, limit=self._config.max_items
        )

        if not contents:
            logger.debug("No new content for digest", stream_id=stream.id)
            get_metrics().digests_generated.labels(result="empty").inc()
            await self._advance(stream, schedule, now)
            return

        # A full page may have left rows behind; stay due and resume after the last one
        backlog = len(contents) >= self._config.max_items
        llm = stream.llm
        template = stream.digest_prompt or self._config.default_prompt
        prompt = render_template(template, {"content": format_digest_items(contents)})
        summary = await self._llm.complete(
            llm.provider,
            prompt,
            CompletionOptions(model=llm.model, temperature=llm.temperature),
        )

        await self._llm_outputs.create(
            LlmOutput(
                content_id=contents[-1].id,
                stream_id=stream.id,
                model=llm.model,
                prompt_text=prompt,
                raw_output=summary,
            )
        )
        result.digests_generated += 1
        get_metrics().digests_generated.labels(result="generated").inc()

        recipient = stream.recipient
        if stream.notifications_enabled and recipient:
            sent = await self._dispatcher.send(
                stream.channel,
                recipient,
                NotificationMessage(
                    title=f"Daily Digest: {stream.name}",
                    content=summary,
                    metadata={"stream_id": stream.id, "source_id": stream.source_id},
                ),
                stream.channel_config,
            )
            if sent:
                result.notifications_sent += 1

        if backlog:
            await self._streams.update_schedule(
                stream.id, stream.next_run, last_run=contents[-1].created_at
            )
        else:
            await self._advance(stream, schedule, now)
        logger.info(
            "Digest processed",
            stream_id=stream.id,
            items=len(contents),
            backlog=backlog,
        )

    async def _advance(self, stream: Stream, schedule: str, now: datetime) -> None:
        await self._streams.update_schedule(
            stream.id,
            next_run_from_schedule(schedule, now),
            last_run=now,
        )

    async def run_forever(self) -> None:
        """Tick every ``tick_interval_seconds`` until stop()."""
        self._running = True
        logger.info(
            "Starting digest aggregator",
            interval_seconds=self._config.tick_interval_seconds,
        )
        while self._running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Digest tick failed", error=str(e))
            await asyncio.sleep(self._config.tick_interval_seconds)

    async def stop(self) -> None:
        logger.info("Stopping digest aggregator")
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running
