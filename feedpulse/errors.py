"""Error taxonomy shared across the pipeline.

Every error raised to a caller carries a ``classification`` so that the
CLI (or any future request layer) can render a structured payload via
``to_dict()`` without inspecting exception types.

Transient external failures (adapter HTTP errors, channel timeouts) are
*not* modelled here; they are caught at their boundary and surface as
empty results or ``False`` returns.
"""

from typing import Any


class FeedPulseError(Exception):
    """Base class for errors surfaced to callers."""

    classification: str = "error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "error": self.classification,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(FeedPulseError):
    """A referenced entity (stream, content, backtest, source) does not exist."""

    classification = "not_found"


class InvalidRequestError(FeedPulseError):
    """Input violates a domain invariant (empty or inverted range, bad config)."""

    classification = "invalid_request"


class ConflictError(FeedPulseError):
    """The entity is in a state that forbids the requested transition."""

    classification = "conflict"


class ConfigurationError(FeedPulseError):
    """Missing credentials or an unknown provider/channel/source-type name."""

    classification = "configuration"


class UnknownSourceTypeError(ConfigurationError):
    """No adapter is registered for a source type tag."""

    def __init__(self, source_type: str) -> None:
        super().__init__(
            f"No adapter registered for source type {source_type!r}",
            source_type=source_type,
        )
        self.source_type = source_type


class ProviderNotAvailableError(ConfigurationError):
    """An LLM provider is unknown or not ready."""

    def __init__(self, provider: str, reason: str = "not registered") -> None:
        super().__init__(
            f"LLM provider {provider!r} is not available ({reason})",
            provider=provider,
        )
        self.provider = provider


class ChannelNotAvailableError(ConfigurationError):
    """A notification channel name has no registered implementation."""

    def __init__(self, channel: str) -> None:
        super().__init__(
            f"Notification channel {channel!r} is not registered",
            channel=channel,
        )
        self.channel = channel
