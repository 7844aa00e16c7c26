"""Configuration for LLM providers.

API keys, OpenAI-compatible base URLs, request timeout and circuit breaker
tuning. All settings can be overridden via LLM_* environment variables.
"""

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMConfig(BaseSettings):
    """Configuration for the LLM provider registry.

    A provider is ready only when its API key is set, and for ``custom``
    also its base URL.

    Example:
        LLM_OPENAI_API_KEY=sk-...
        LLM_ANTHROPIC_API_KEY=sk-ant-...
        LLM_CUSTOM_BASE_URL=http://localhost:11434/v1
    """

    model_config = SettingsConfigDict(
        env_prefix="LLM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API keys
    openai_api_key: SecretStr | None = Field(
        default=None,
        description="OpenAI API key",
    )
    anthropic_api_key: SecretStr | None = Field(
        default=None,
        description="Anthropic API key",
    )
    siliconflow_api_key: SecretStr | None = Field(
        default=None,
        description="SiliconFlow API key (OpenAI-compatible endpoint)",
    )
    custom_api_key: SecretStr | None = Field(
        default=None,
        description="API key for a self-hosted OpenAI-compatible endpoint",
    )

    # Endpoints
    siliconflow_base_url: str = Field(
        default="https://api.siliconflow.cn/v1",
        description="SiliconFlow OpenAI-compatible base URL",
    )
    custom_base_url: str | None = Field(
        default=None,
        description="Base URL of the custom OpenAI-compatible endpoint",
    )

    # Defaults applied when CompletionOptions leaves a field unset
    default_max_tokens: int = Field(
        default=1024,
        ge=1,
        le=32_000,
        description="max_tokens when the caller does not set one",
    )

    # Request timeout
    timeout_seconds: float = Field(
        default=60.0,
        ge=5.0,
        le=300.0,
        description="Timeout in seconds for LLM API calls",
    )

    # Circuit breaker settings
    circuit_failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures before opening circuit",
    )
    circuit_recovery_timeout: float = Field(
        default=60.0,
        ge=5.0,
        description="Seconds before attempting a recovery trial call",
    )
