"""Tests for StreamProcessor live and backtest paths."""

from unittest.mock import AsyncMock

import pytest

from feedpulse.errors import ProviderNotAvailableError
from feedpulse.llm.base import CompletionOptions
from feedpulse.streams.processor import (
    BacktestOutcome,
    ProcessOutcome,
    StreamProcessor,
    is_triggered,
)
from feedpulse.streams.schemas import Stream


@pytest.fixture
def processor(
    mock_streams, mock_contents, mock_logs, mock_llm_outputs, mock_llm, mock_dispatcher, mock_events
) -> StreamProcessor:
    return StreamProcessor(
        streams=mock_streams,
        contents=mock_contents,
        logs=mock_logs,
        llm_outputs=mock_llm_outputs,
        llm=mock_llm,
        dispatcher=mock_dispatcher,
        events=mock_events,
    )


def _logged(mock_logs) -> list[tuple[str, str]]:
    return [(c.args[0].type, c.args[0].message) for c in mock_logs.create.call_args_list]


def _emitted(mock_events) -> list[str]:
    return [c.args[0] for c in mock_events.emit.call_args_list]


# ── Trigger heuristic ───────────────────────────────────


class TestIsTriggered:
    @pytest.mark.parametrize("response", ["TRUE", "true", "Yes, it is.", "This is TRUE because"])
    def test_affirmative(self, response):
        assert is_triggered(response) is True

    @pytest.mark.parametrize("response", ["FALSE", "no", "", "Not relevant"])
    def test_negative(self, response):
        assert is_triggered(response) is False

    def test_substring_match_is_loose(self):
        # "untrue" contains "true"; the check is a substring match
        assert is_triggered("untrue") is True


# ── Live path ───────────────────────────────────────────


class TestProcessLive:
    @pytest.mark.asyncio
    async def test_triggered_and_sent(
        self, processor, mock_llm, mock_logs, mock_llm_outputs, mock_dispatcher, mock_events,
        sample_content,
    ):
        mock_llm.complete.side_effect = ["TRUE", "A new model launched."]

        outcome = await processor.process("stream-1", "content-1")

        assert outcome == ProcessOutcome.SENT

        trigger_call, render_call = mock_llm.complete.call_args_list
        assert trigger_call.args[0] == "openai"
        assert trigger_call.args[1] == f"Is this about AI? {sample_content.raw_content}"
        assert trigger_call.args[2] == CompletionOptions(model="gpt-4o-mini", temperature=0.2)
        assert render_call.args[1] == (
            f"Summarize New model: {sample_content.raw_content} (https://example.com/post/1)"
        )

        output = mock_llm_outputs.create.call_args.args[0]
        assert output.backtest_id is None
        assert output.model == "gpt-4o-mini"
        assert output.raw_output == "A new model launched."

        channel, recipient, message, config = mock_dispatcher.send.call_args.args
        assert (channel, recipient) == ("telegram", "12345")
        assert message.title == "New Update from AI news"
        assert message.content == "A new model launched."
        assert message.url == "https://example.com/post/1"
        assert message.metadata == {"stream_id": "stream-1", "source_id": "src-1"}
        assert config["recipient"] == "12345"

        assert _logged(mock_logs) == [
            ("info", "LLM Trigger Check (openai/gpt-4o-mini): True"),
            ("success", "Notification sent to telegram"),
        ]
        assert _emitted(mock_events) == ["log", "log", "notification_sent"]
        sent_payload = mock_events.emit.call_args_list[-1].args[1]
        assert sent_payload == {
            "stream_id": "stream-1",
            "recipient": "12345",
            "content_id": "content-1",
            "channel": "telegram",
        }

    @pytest.mark.asyncio
    async def test_trigger_log_records_response(self, processor, mock_llm, mock_logs):
        mock_llm.complete.side_effect = ["Yes, relevant", "summary"]

        await processor.process("stream-1", "content-1")

        entry = mock_logs.create.call_args_list[0].args[0]
        assert entry.metadata == {"response": "Yes, relevant", "content_id": "content-1"}

    @pytest.mark.asyncio
    async def test_not_triggered(
        self, processor, mock_llm, mock_logs, mock_llm_outputs, mock_dispatcher
    ):
        mock_llm.complete.return_value = "FALSE"

        outcome = await processor.process("stream-1", "content-1")

        assert outcome == ProcessOutcome.NOT_TRIGGERED
        assert mock_llm.complete.await_count == 1
        mock_llm_outputs.create.assert_not_called()
        mock_dispatcher.send.assert_not_called()
        assert _logged(mock_logs) == [("info", "LLM Trigger Check (openai/gpt-4o-mini): False")]

    @pytest.mark.asyncio
    async def test_no_trigger_prompt_always_triggers(
        self, processor, mock_streams, mock_llm, sample_stream
    ):
        sample_stream.prompt_template = {"notification_prompt": "Summarize {{content}}"}
        mock_llm.complete.return_value = "summary"

        outcome = await processor.process("stream-1", "content-1")

        assert outcome == ProcessOutcome.SENT
        assert mock_llm.complete.await_count == 1

    @pytest.mark.asyncio
    async def test_no_prompts_sends_raw_content(
        self, processor, mock_llm, mock_dispatcher, mock_llm_outputs, sample_stream, sample_content
    ):
        sample_stream.prompt_template = {}

        outcome = await processor.process("stream-1", "content-1")

        assert outcome == ProcessOutcome.SENT
        mock_llm.complete.assert_not_called()
        mock_llm_outputs.create.assert_not_called()
        message = mock_dispatcher.send.call_args.args[2]
        assert message.content == sample_content.raw_content

    @pytest.mark.asyncio
    async def test_send_failure(self, processor, mock_dispatcher, mock_logs, mock_events):
        mock_dispatcher.send.return_value = False

        outcome = await processor.process("stream-1", "content-1")

        assert outcome == ProcessOutcome.SEND_FAILED
        assert _logged(mock_logs)[-1] == ("error", "Failed to send notification to telegram")
        assert _emitted(mock_events)[-1] == "notification_failed"

    @pytest.mark.asyncio
    async def test_dispatch_ignores_enabled_flag(self, processor, mock_dispatcher, sample_stream):
        sample_stream.notification_config["enabled"] = False

        outcome = await processor.process("stream-1", "content-1")

        assert outcome == ProcessOutcome.SENT
        mock_dispatcher.send.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stream_not_found(self, processor, mock_streams, mock_contents, mock_logs):
        mock_streams.get_by_id.return_value = None

        outcome = await processor.process("missing", "content-1")

        assert outcome == ProcessOutcome.NOT_FOUND
        mock_contents.get_by_id.assert_not_called()
        mock_logs.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_content_not_found(self, processor, mock_contents, mock_logs):
        mock_contents.get_by_id.return_value = None

        outcome = await processor.process("stream-1", "missing")

        assert outcome == ProcessOutcome.NOT_FOUND
        mock_logs.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_provider_fails_without_retry(
        self, processor, mock_llm, mock_logs, mock_dispatcher
    ):
        mock_llm.complete.side_effect = ProviderNotAvailableError("openai")

        outcome = await processor.process("stream-1", "content-1")

        assert outcome == ProcessOutcome.FAILED
        mock_dispatcher.send.assert_not_called()
        log_type, message = _logged(mock_logs)[-1]
        assert log_type == "error"
        assert message.startswith("Processing error: LLM provider 'openai' is not available")

    @pytest.mark.asyncio
    async def test_transient_error_logged_and_raised(self, processor, mock_llm, mock_logs):
        mock_llm.complete.side_effect = TimeoutError("LLM timed out")

        with pytest.raises(TimeoutError):
            await processor.process("stream-1", "content-1")

        assert _logged(mock_logs) == [("error", "Processing error: LLM timed out")]

    @pytest.mark.asyncio
    async def test_event_sink_failure_does_not_fail_job(self, processor, mock_events):
        mock_events.emit.side_effect = ConnectionError("redis down")

        outcome = await processor.process("stream-1", "content-1")

        assert outcome == ProcessOutcome.SENT


# ── Dispatch idempotency ────────────────────────────────


class TestDispatchDedup:
    @pytest.fixture
    def redis_client(self) -> AsyncMock:
        client = AsyncMock()
        client.set = AsyncMock(return_value=True)
        return client

    @pytest.fixture
    def deduping_processor(self, processor, redis_client) -> StreamProcessor:
        processor._redis = redis_client
        return processor

    @pytest.mark.asyncio
    async def test_first_delivery_claims_key(self, deduping_processor, redis_client):
        outcome = await deduping_processor.process("stream-1", "content-1")

        assert outcome == ProcessOutcome.SENT
        redis_client.set.assert_awaited_once_with(
            "notify:dedup:stream-1:content-1", "1", nx=True, ex=24 * 3600
        )

    @pytest.mark.asyncio
    async def test_redelivery_is_suppressed(
        self, deduping_processor, redis_client, mock_dispatcher, mock_logs
    ):
        redis_client.set.return_value = None

        outcome = await deduping_processor.process("stream-1", "content-1")

        assert outcome == ProcessOutcome.DUPLICATE
        mock_dispatcher.send.assert_not_called()
        # Only the trigger check was logged
        assert [t for t, _ in _logged(mock_logs)] == ["info"]

    @pytest.mark.asyncio
    async def test_redis_error_fails_open(self, deduping_processor, redis_client, mock_dispatcher):
        redis_client.set.side_effect = ConnectionError("redis down")

        outcome = await deduping_processor.process("stream-1", "content-1")

        assert outcome == ProcessOutcome.SENT
        mock_dispatcher.send.assert_awaited_once()


# ── Backtest path ───────────────────────────────────────


class TestProcessForBacktest:
    @pytest.mark.asyncio
    async def test_triggered(
        self, processor, mock_llm, mock_llm_outputs, mock_dispatcher, mock_events, mock_logs,
        sample_stream, sample_content,
    ):
        mock_llm.complete.side_effect = ["TRUE", "Rendered summary"]

        outcome = await processor.process_for_backtest(sample_stream, sample_content, "bt-1")

        assert outcome == BacktestOutcome(
            triggered=True,
            analysis_result="TRUE",
            notification_message="Rendered summary",
        )
        output = mock_llm_outputs.create.call_args.args[0]
        assert output.backtest_id == "bt-1"
        assert output.raw_output == "Rendered summary"
        assert output.prompt_text.startswith("Is this about AI?")
        mock_dispatcher.send.assert_not_called()
        mock_events.emit.assert_not_called()
        mock_logs.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_not_triggered_skips_render(
        self, processor, mock_llm, mock_llm_outputs, sample_stream, sample_content
    ):
        mock_llm.complete.return_value = "FALSE"

        outcome = await processor.process_for_backtest(sample_stream, sample_content, "bt-1")

        assert outcome.triggered is False
        assert outcome.analysis_result == "FALSE"
        assert outcome.notification_message == ""
        assert mock_llm.complete.await_count == 1
        assert mock_llm_outputs.create.call_args.args[0].raw_output == "FALSE"

    @pytest.mark.asyncio
    async def test_no_prompts_writes_nothing(
        self, processor, mock_llm, mock_llm_outputs, sample_content
    ):
        stream = Stream(id="stream-2", source_id="src-1", name="raw")

        outcome = await processor.process_for_backtest(stream, sample_content, "bt-1")

        assert outcome.triggered is True
        assert outcome.notification_message == sample_content.raw_content
        mock_llm.complete.assert_not_called()
        mock_llm_outputs.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_llm_error_propagates(self, processor, mock_llm, sample_stream, sample_content):
        mock_llm.complete.side_effect = RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await processor.process_for_backtest(sample_stream, sample_content, "bt-1")
