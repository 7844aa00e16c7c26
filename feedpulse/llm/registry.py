"""LLM provider registry.

Every call goes through a per-provider ProviderCircuitBreaker and is
recorded in ``feedpulse_llm_calls_total``. Unknown or unconfigured
providers raise ProviderNotAvailableError, which callers treat as a
configuration problem rather than a transient failure.
"""

import logging
import time

from feedpulse.errors import ProviderNotAvailableError
from feedpulse.llm.base import CompletionOptions, LLMProvider
from feedpulse.llm.circuit_breaker import CircuitOpenError, ProviderCircuitBreaker
from feedpulse.llm.config import LLMConfig
from feedpulse.llm.providers import (
    AnthropicProvider,
    OpenAICompatibleProvider,
    OpenAIProvider,
)
from feedpulse.observability.metrics import get_metrics

logger = logging.getLogger(__name__)


class LLMRegistry:
    """Named LLM providers with circuit breaker protection."""

    def __init__(
        self,
        providers: list[LLMProvider] | None = None,
        config: LLMConfig | None = None,
    ) -> None:
        self._config = config or LLMConfig()
        self._providers: dict[str, LLMProvider] = {}
        self._breakers: dict[str, ProviderCircuitBreaker] = {}
        for provider in providers or []:
            self.register(provider)

    def register(self, provider: LLMProvider) -> None:
        self._providers[provider.name] = provider
        self._breakers[provider.name] = ProviderCircuitBreaker(
            provider.name,
            failure_threshold=self._config.circuit_failure_threshold,
            recovery_timeout=self._config.circuit_recovery_timeout,
        )
        if provider.is_ready():
            logger.info("Registered LLM provider: %s", provider.name)
        else:
            logger.info("LLM provider %s registered but not configured", provider.name)

    def get(self, name: str) -> LLMProvider:
        provider = self._providers.get(name)
        if provider is None:
            raise ProviderNotAvailableError(name)
        if not provider.is_ready():
            raise ProviderNotAvailableError(name, reason="not configured")
        return provider

    def breaker(self, name: str) -> ProviderCircuitBreaker:
        return self._breakers[name]

    def available_providers(self) -> list[str]:
        """Names of providers that are configured and can take calls."""
        return sorted(name for name, p in self._providers.items() if p.is_ready())

    async def complete(
        self,
        name: str,
        prompt: str,
        options: CompletionOptions | None = None,
    ) -> str:
        """Run one completion on provider ``name``.

        Raises:
            ProviderNotAvailableError: Unknown or unconfigured provider.
            CircuitOpenError: The provider's breaker is open.
            Exception: Whatever the SDK raised (timeouts, API errors).
        """
        provider = self.get(name)
        metrics = get_metrics()
        start = time.perf_counter()
        try:
            result = await self._breakers[name].call(
                provider.generate_completion, prompt, options
            )
        except CircuitOpenError:
            metrics.record_llm_call(name, "circuit_open")
            raise
        except Exception:
            metrics.record_llm_call(name, "error", time.perf_counter() - start)
            raise

        metrics.record_llm_call(name, "success", time.perf_counter() - start)
        return result

    async def close(self) -> None:
        for provider in self._providers.values():
            await provider.close()


def create_llm_registry(config: LLMConfig | None = None) -> LLMRegistry:
    """Registry with the four shipped providers, configured from LLM_* settings."""
    config = config or LLMConfig()

    def _secret(value) -> str | None:
        return value.get_secret_value() if value is not None else None

    common = {
        "timeout": config.timeout_seconds,
        "default_max_tokens": config.default_max_tokens,
    }
    return LLMRegistry(
        [
            OpenAIProvider(api_key=_secret(config.openai_api_key), **common),
            AnthropicProvider(api_key=_secret(config.anthropic_api_key), **common),
            OpenAICompatibleProvider(
                name="siliconflow",
                api_key=_secret(config.siliconflow_api_key),
                base_url=config.siliconflow_base_url,
                **common,
            ),
            OpenAICompatibleProvider(
                name="custom",
                api_key=_secret(config.custom_api_key),
                base_url=config.custom_base_url,
                **common,
            ),
        ],
        config,
    )
