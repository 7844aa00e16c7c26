"""LLM provider contract."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass
class CompletionOptions:
    """Per-call generation options; None leaves the provider default."""

    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    stop: list[str] | None = None


class LLMProvider(ABC):
    """A text completion backend.

    Subclasses must implement:
        - name: Registry name ("openai", "anthropic", ...)
        - is_ready(): True when credentials are configured
        - generate_completion(): Prompt in, text out
    """

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def is_ready(self) -> bool:
        ...

    @abstractmethod
    async def generate_completion(
        self,
        prompt: str,
        options: CompletionOptions | None = None,
    ) -> str:
        """Return the completion text (empty string if the model returned none)."""
        ...

    async def close(self) -> None:
        """Release SDK clients."""
