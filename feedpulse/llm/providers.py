"""LLM provider implementations.

SDK imports are deferred to the first call (lazy loading) so that a
deployment using only one vendor does not pay the import cost of the
others, and so tests can run without network access.
"""

import logging
from typing import Any

from feedpulse.llm.base import CompletionOptions, LLMProvider

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
DEFAULT_ANTHROPIC_MODEL = "claude-3-5-haiku-latest"


class OpenAIProvider(LLMProvider):
    """Chat completions through the official ``openai`` SDK.

    Also serves any OpenAI-compatible endpoint when ``base_url`` is set
    (see OpenAICompatibleProvider).
    """

    def __init__(
        self,
        api_key: str | None,
        timeout: float = 60.0,
        base_url: str | None = None,
        default_model: str = DEFAULT_OPENAI_MODEL,
        default_max_tokens: int = 1024,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._base_url = base_url
        self._default_model = default_model
        self._default_max_tokens = default_max_tokens
        self._client: Any = None

    @property
    def name(self) -> str:
        return "openai"

    def is_ready(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> Any:
        """Lazy-initialize the async OpenAI client."""
        if self._client is None:
            import openai

            self._client = openai.AsyncOpenAI(
                api_key=self._api_key,
                base_url=self._base_url,
                timeout=self._timeout,
            )
        return self._client

    async def generate_completion(
        self,
        prompt: str,
        options: CompletionOptions | None = None,
    ) -> str:
        options = options or CompletionOptions()
        request: dict[str, Any] = {
            "model": options.model or self._default_model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": options.max_tokens or self._default_max_tokens,
        }
        if options.temperature is not None:
            request["temperature"] = options.temperature
        if options.stop:
            request["stop"] = options.stop

        response = await self._get_client().chat.completions.create(**request)
        return response.choices[0].message.content or ""

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


class OpenAICompatibleProvider(OpenAIProvider):
    """An OpenAI-compatible endpoint registered under its own name."""

    def __init__(self, name: str, api_key: str | None, base_url: str | None, **kwargs: Any) -> None:
        super().__init__(api_key=api_key, base_url=base_url, **kwargs)
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def is_ready(self) -> bool:
        return bool(self._api_key and self._base_url)


class AnthropicProvider(LLMProvider):
    """Messages API through the official ``anthropic`` SDK."""

    def __init__(
        self,
        api_key: str | None,
        timeout: float = 60.0,
        default_model: str = DEFAULT_ANTHROPIC_MODEL,
        default_max_tokens: int = 1024,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._default_model = default_model
        self._default_max_tokens = default_max_tokens
        self._client: Any = None

    @property
    def name(self) -> str:
        return "anthropic"

    def is_ready(self) -> bool:
        return bool(self._api_key)

    def _get_client(self) -> Any:
        """Lazy-initialize the async Anthropic client."""
        if self._client is None:
            import anthropic

            self._client = anthropic.AsyncAnthropic(
                api_key=self._api_key,
                timeout=self._timeout,
            )
        return self._client

    async def generate_completion(
        self,
        prompt: str,
        options: CompletionOptions | None = None,
    ) -> str:
        options = options or CompletionOptions()
        request: dict[str, Any] = {
            "model": options.model or self._default_model,
            "max_tokens": options.max_tokens or self._default_max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if options.temperature is not None:
            # Anthropic caps temperature at 1.0
            request["temperature"] = min(options.temperature, 1.0)
        if options.stop:
            request["stop_sequences"] = options.stop

        response = await self._get_client().messages.create(**request)
        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
