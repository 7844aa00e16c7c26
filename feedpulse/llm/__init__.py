"""
LLM access for trigger checks, notification rendering and digests.

Components:
- LLMProvider / CompletionOptions: Provider contract
- OpenAIProvider, AnthropicProvider, OpenAICompatibleProvider: Shipped backends
- LLMRegistry: Named providers behind per-provider circuit breakers
"""

from feedpulse.llm.base import CompletionOptions, LLMProvider
from feedpulse.llm.circuit_breaker import CircuitOpenError, ProviderCircuitBreaker
from feedpulse.llm.config import LLMConfig
from feedpulse.llm.providers import AnthropicProvider, OpenAICompatibleProvider, OpenAIProvider
from feedpulse.llm.registry import LLMRegistry, create_llm_registry

__all__ = [
    "AnthropicProvider",
    "CircuitOpenError",
    "CompletionOptions",
    "ProviderCircuitBreaker",
    "LLMConfig",
    "LLMProvider",
    "LLMRegistry",
    "OpenAICompatibleProvider",
    "OpenAIProvider",
    "create_llm_registry",
]
