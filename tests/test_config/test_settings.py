"""Tests for environment-driven configuration."""

import pytest

from feedpulse.backtest.config import BacktestConfig
from feedpulse.config.settings import Settings
from feedpulse.digest.config import DigestConfig
from feedpulse.llm.config import LLMConfig
from feedpulse.notifications.dispatcher import NotificationConfig
from feedpulse.polling.config import PollingConfig
from feedpulse.streams.config import StreamsConfig


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("X_BEARER_TOKENS", raising=False)
        settings = Settings(_env_file=None)

        assert settings.environment == "development"
        assert settings.is_production is False
        assert settings.x_configured is False
        assert settings.max_http_retries == 2

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("X_BEARER_TOKENS", "a,b")

        settings = Settings(_env_file=None)

        assert settings.is_production
        assert settings.x_configured

    def test_invalid_log_level(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, log_level="TRACE")


class TestComponentConfigs:
    def test_defaults(self):
        assert PollingConfig(_env_file=None).stale_after_seconds == 300
        assert DigestConfig(_env_file=None).default_schedule == "0 9 * * *"
        assert BacktestConfig(_env_file=None).max_concurrent_runs == 2
        assert LLMConfig(_env_file=None).timeout_seconds == 60.0
        assert NotificationConfig(_env_file=None).retry_max_attempts == 3

    @pytest.mark.parametrize(
        "cls,env,attr,value",
        [
            (PollingConfig, "POLLING_STALE_AFTER_SECONDS", "stale_after_seconds", 60),
            (StreamsConfig, "STREAMS_MAX_DELIVERY_ATTEMPTS", "max_delivery_attempts", 5),
            (DigestConfig, "DIGEST_MAX_ITEMS", "max_items", 20),
            (BacktestConfig, "BACKTEST_MAX_CONCURRENT_RUNS", "max_concurrent_runs", 4),
            (LLMConfig, "LLM_TIMEOUT_SECONDS", "timeout_seconds", 30.0),
            (NotificationConfig, "NOTIFICATIONS_RETRY_MAX_ATTEMPTS", "retry_max_attempts", 1),
        ],
    )
    def test_env_prefix(self, monkeypatch, cls, env, attr, value):
        monkeypatch.setenv(env, str(value))
        assert getattr(cls(_env_file=None), attr) == value
