"""Schema definitions for streams and their execution records.

A stream binds one source to a trigger/notification prompt pair and a
delivery channel. Logs and LLM outputs are append-only records written
while processing a stream; a null ``backtest_id`` on an LLM output marks a
live run, a non-null one a backtest artifact.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

StreamStatus = Literal["active", "paused"]

VALID_STREAM_STATUSES: frozenset[str] = frozenset({"active", "paused"})

LogType = Literal["info", "success", "error", "warning"]

VALID_LOG_TYPES: frozenset[str] = frozenset({
    "info",
    "success",
    "error",
    "warning",
})

DEFAULT_LLM_PROVIDER = "openai"
DEFAULT_LLM_MODEL = "gpt-4o-mini"
DEFAULT_LLM_TEMPERATURE = 0.7
DEFAULT_CHANNEL = "telegram"


def _parse_timestamp(value: Any) -> datetime | None:
    """Aggregation timestamps are stored as ISO strings inside JSONB."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class LLMSettings:
    """Resolved LLM selection for one stream."""

    provider: str = DEFAULT_LLM_PROVIDER
    model: str = DEFAULT_LLM_MODEL
    temperature: float = DEFAULT_LLM_TEMPERATURE

    @property
    def label(self) -> str:
        return f"{self.provider}/{self.model}"


@dataclass
class Stream:
    """A persisted stream row (plus the owner's notification settings).

    Attributes:
        prompt_template: ``trigger_prompt``, ``notification_prompt`` and, for
            digest streams, ``template``.
        notification_config: ``channel``, ``recipient``, ``enabled`` and
            per-channel overrides (``telegram_chat_id``, ``discord_webhook_url`` ...).
        llm_config: ``provider``, ``model``, ``temperature``.
        aggregation_config: ``type`` ("digest"), ``schedule``, ``last_run``,
            ``next_run``.
        user_settings: The owner's notification settings, used as a fallback
            override map when the stream does not set a field itself.
    """

    id: str
    source_id: str
    name: str
    status: str = "active"
    prompt_template: dict[str, Any] = field(default_factory=dict)
    notification_config: dict[str, Any] = field(default_factory=dict)
    llm_config: dict[str, Any] = field(default_factory=dict)
    aggregation_config: dict[str, Any] = field(default_factory=dict)
    user_settings: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __post_init__(self) -> None:
        if self.status not in VALID_STREAM_STATUSES:
            raise ValueError(
                f"Invalid stream status {self.status!r}. "
                f"Must be one of: {sorted(VALID_STREAM_STATUSES)}"
            )

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @property
    def trigger_prompt(self) -> str:
        """Trigger template; ``template`` doubles as the trigger for non-digest streams."""
        return (
            self.prompt_template.get("trigger_prompt")
            or self.prompt_template.get("template")
            or ""
        )

    @property
    def notification_prompt(self) -> str:
        return self.prompt_template.get("notification_prompt") or ""

    @property
    def digest_prompt(self) -> str:
        return self.prompt_template.get("template") or ""

    @property
    def llm(self) -> LLMSettings:
        temperature = self.llm_config.get("temperature")
        return LLMSettings(
            provider=self.llm_config.get("provider") or DEFAULT_LLM_PROVIDER,
            model=self.llm_config.get("model") or DEFAULT_LLM_MODEL,
            temperature=(
                float(temperature) if temperature is not None else DEFAULT_LLM_TEMPERATURE
            ),
        )

    @property
    def channel(self) -> str:
        return (
            self.notification_config.get("channel")
            or self.user_settings.get("channel")
            or DEFAULT_CHANNEL
        )

    @property
    def recipient(self) -> str:
        return (
            self.notification_config.get("recipient")
            or self.user_settings.get("recipient")
            or ""
        )

    @property
    def channel_config(self) -> dict[str, Any]:
        """User-level settings overlaid by the stream's own notification config."""
        return {**self.user_settings, **self.notification_config}

    @property
    def notifications_enabled(self) -> bool:
        return bool(self.notification_config.get("enabled"))

    # Digest aggregation state

    @property
    def is_digest(self) -> bool:
        return self.aggregation_config.get("type") == "digest"

    @property
    def schedule(self) -> str | None:
        return self.aggregation_config.get("schedule")

    @property
    def last_run(self) -> datetime | None:
        return _parse_timestamp(self.aggregation_config.get("last_run"))

    @property
    def next_run(self) -> datetime | None:
        return _parse_timestamp(self.aggregation_config.get("next_run"))


@dataclass
class LogEntry:
    """An append-only execution record for a stream."""

    stream_id: str
    type: str
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)
    id: str | None = None
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def __post_init__(self) -> None:
        if self.type not in VALID_LOG_TYPES:
            raise ValueError(
                f"Invalid log type {self.type!r}. "
                f"Must be one of: {sorted(VALID_LOG_TYPES)}"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary (event payloads)."""
        return {
            "id": self.id,
            "stream_id": self.stream_id,
            "type": self.type,
            "message": self.message,
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class LlmOutput:
    """One LLM call that produced a user-visible artifact."""

    content_id: str
    stream_id: str
    model: str
    prompt_text: str
    raw_output: str
    backtest_id: str | None = None
    id: str | None = None
    created_at: datetime | None = None

    @property
    def is_backtest(self) -> bool:
        return self.backtest_id is not None
