"""
Per-item stream processing: trigger check, render, dispatch.

The live path (``process``) is driven by StreamWorker from queued jobs and
may notify. The backtest path (``process_for_backtest``) runs the same
trigger check and render against historical content, persists its output
under a backtest id, and never dispatches or emits events.

Live flow:
    1. Load stream and content (missing either -> NOT_FOUND, no Log row)
    2. Trigger check when a trigger prompt is set; otherwise triggered
    3. Render via the notification prompt, or use the raw content
    4. Claim the dispatch key, then send through the dispatcher
"""

import enum
from dataclasses import dataclass
from typing import Any

import structlog

from feedpulse.errors import ConfigurationError
from feedpulse.events.sink import EventSink, NullEventSink
from feedpulse.ingestion.schemas import Content
from feedpulse.llm.base import CompletionOptions
from feedpulse.llm.registry import LLMRegistry
from feedpulse.notifications.dispatcher import NotificationDispatcher
from feedpulse.notifications.schemas import NotificationMessage
from feedpulse.storage.repository import ContentRepository
from feedpulse.streams.config import StreamsConfig
from feedpulse.streams.repository import (
    LlmOutputRepository,
    LogRepository,
    StreamRepository,
)
from feedpulse.streams.schemas import LlmOutput, LogEntry, Stream
from feedpulse.streams.templates import content_variables, render_template

logger = structlog.get_logger(__name__)


class ProcessOutcome(str, enum.Enum):
    """Terminal state of one live job. Every outcome is acked."""

    NOT_FOUND = "not_found"
    NOT_TRIGGERED = "not_triggered"
    SENT = "sent"
    SEND_FAILED = "send_failed"
    DUPLICATE = "duplicate"
    FAILED = "failed"


@dataclass
class BacktestOutcome:
    """Result of replaying one content row through a stream."""

    triggered: bool
    analysis_result: str
    notification_message: str


def is_triggered(response: str) -> bool:
    """Loose affirmative check on a trigger-check completion."""
    lowered = response.lower()
    return "true" in lowered or "yes" in lowered


class StreamProcessor:
    """
    Evaluates content against stream prompts and notifies on matches.

    Usage:
        processor = StreamProcessor(streams, contents, logs, llm_outputs, llm, dispatcher)
        outcome = await processor.process(stream_id, content_id)
    """

    def __init__(
        self,
        streams: StreamRepository,
        contents: ContentRepository,
        logs: LogRepository,
        llm_outputs: LlmOutputRepository,
        llm: LLMRegistry,
        dispatcher: NotificationDispatcher,
        events: EventSink | None = None,
        redis_client: Any | None = None,
        config: StreamsConfig | None = None,
    ):
        self._streams = streams
        self._contents = contents
        self._logs = logs
        self._llm_outputs = llm_outputs
        self._llm = llm
        self._dispatcher = dispatcher
        self._events = events or NullEventSink()
        self._redis = redis_client
        self._config = config or StreamsConfig()

    # ── Live path ────────────────────────────────────────

    async def process(self, stream_id: str, content_id: str) -> ProcessOutcome:
        """
        Run the live state machine for one (stream, content) job.

        Returns:
            The terminal outcome. The caller acks on any return.

        Raises:
            Exception: Transient failures (LLM errors, storage errors) after
                an error Log is written, so the job is redelivered.
        """
        stream = await self._streams.get_by_id(stream_id)
        content = await self._contents.get_by_id(content_id) if stream else None
        if stream is None or content is None:
            logger.warning(
                "Stream or content not found",
                stream_id=stream_id,
                content_id=content_id,
            )
            return ProcessOutcome.NOT_FOUND

        try:
            return await self._process_live(stream, content)
        except ConfigurationError as e:
            # Retrying cannot fix a missing provider or channel
            await self._log(
                stream.id, "error", f"Processing error: {e.message}",
                {"content_id": content.id},
            )
            return ProcessOutcome.FAILED
        except Exception as e:
            logger.error(
                "Error processing stream job",
                stream_id=stream.id,
                content_id=content.id,
                error=str(e),
            )
            await self._log(
                stream.id, "error", f"Processing error: {e}",
                {"content_id": content.id},
            )
            raise

    async def _process_live(self, stream: Stream, content: Content) -> ProcessOutcome:
        llm = stream.llm
        triggered = True
        trigger_prompt = stream.trigger_prompt
        if trigger_prompt.strip():
            response = await self._complete(stream, content, trigger_prompt)
            triggered = is_triggered(response)
            await self._log(
                stream.id,
                "info",
                f"LLM Trigger Check ({llm.label}): {triggered}",
                {"response": response, "content_id": content.id},
            )

        if not triggered:
            logger.info(
                "Content not triggered",
                stream_id=stream.id,
                content_id=content.id,
            )
            return ProcessOutcome.NOT_TRIGGERED

        body = content.raw_content
        notification_prompt = stream.notification_prompt
        if notification_prompt.strip():
            prompt_text = self._render(stream, content, notification_prompt)
            body = await self._llm.complete(llm.provider, prompt_text, self._options(stream))
            await self._llm_outputs.create(
                LlmOutput(
                    content_id=content.id,
                    stream_id=stream.id,
                    model=llm.model,
                    prompt_text=prompt_text,
                    raw_output=body,
                )
            )

        if not await self._claim_dispatch(stream.id, content.id):
            logger.info(
                "Duplicate notification suppressed",
                stream_id=stream.id,
                content_id=content.id,
            )
            return ProcessOutcome.DUPLICATE

        return await self._dispatch(stream, content, body)

    async def _dispatch(self, stream: Stream, content: Content, body: str) -> ProcessOutcome:
        channel = stream.channel
        recipient = stream.recipient
        message = NotificationMessage(
            title=f"New Update from {stream.name}",
            content=body,
            url=content.url,
            metadata={"stream_id": stream.id, "source_id": stream.source_id},
        )

        sent = await self._dispatcher.send(channel, recipient, message, stream.channel_config)
        details = {"recipient": recipient, "content_id": content.id, "channel": channel}
        if sent:
            await self._log(stream.id, "success", f"Notification sent to {channel}", details)
            await self._emit("notification_sent", {"stream_id": stream.id, **details})
            return ProcessOutcome.SENT

        await self._log(stream.id, "error", f"Failed to send notification to {channel}", details)
        await self._emit("notification_failed", {"stream_id": stream.id, **details})
        return ProcessOutcome.SEND_FAILED

    async def _claim_dispatch(self, stream_id: str, content_id: str) -> bool:
        """SET NX on ``notify:dedup:{stream_id}:{content_id}``.

        Returns True when this delivery owns the notification. Fails open
        when Redis is missing or erroring.
        """
        if self._redis is None:
            return True

        key = f"notify:dedup:{stream_id}:{content_id}"
        ttl_seconds = self._config.dispatch_dedup_ttl_hours * 3600
        try:
            was_set = await self._redis.set(key, "1", nx=True, ex=ttl_seconds)
            return bool(was_set)
        except Exception as e:
            logger.warning("Dispatch dedup check failed", key=key, error=str(e))
            return True

    # ── Backtest path ────────────────────────────────────

    async def process_for_backtest(
        self,
        stream: Stream,
        content: Content,
        backtest_id: str,
    ) -> BacktestOutcome:
        """
        Replay one content row without side effects beyond an LlmOutput row.

        Exceptions propagate to the caller, which records them as a
        FAILURE result.
        """
        llm = stream.llm
        triggered = True
        analysis = ""
        trigger_prompt = stream.trigger_prompt
        trigger_text = ""
        if trigger_prompt.strip():
            trigger_text = self._render(stream, content, trigger_prompt)
            analysis = await self._llm.complete(llm.provider, trigger_text, self._options(stream))
            triggered = is_triggered(analysis)

        body = content.raw_content
        notification_prompt = stream.notification_prompt
        render_text = ""
        if triggered and notification_prompt.strip():
            render_text = self._render(stream, content, notification_prompt)
            body = await self._llm.complete(llm.provider, render_text, self._options(stream))

        if analysis or (triggered and body != content.raw_content):
            await self._llm_outputs.create(
                LlmOutput(
                    content_id=content.id,
                    stream_id=stream.id,
                    model=llm.model,
                    prompt_text=trigger_text or render_text,
                    raw_output=body if triggered else analysis,
                    backtest_id=backtest_id,
                )
            )

        return BacktestOutcome(
            triggered=triggered,
            analysis_result=analysis,
            notification_message=body if triggered else "",
        )

    # ── Helpers ──────────────────────────────────────────

    @staticmethod
    def _render(stream: Stream, content: Content, template: str) -> str:
        return render_template(template, content_variables(content, stream.name))

    @staticmethod
    def _options(stream: Stream) -> CompletionOptions:
        llm = stream.llm
        return CompletionOptions(model=llm.model, temperature=llm.temperature)

    async def _complete(self, stream: Stream, content: Content, template: str) -> str:
        prompt = self._render(stream, content, template)
        return await self._llm.complete(stream.llm.provider, prompt, self._options(stream))

    async def _log(
        self,
        stream_id: str,
        log_type: str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        entry = await self._logs.create(
            LogEntry(stream_id=stream_id, type=log_type, message=message, metadata=metadata or {})
        )
        await self._emit("log", entry.to_dict())

    async def _emit(self, event: str, payload: dict[str, Any]) -> None:
        try:
            await self._events.emit(event, payload)
        except Exception as e:
            logger.warning("Event emit failed", event=event, error=str(e))
