"""Tests for HTTP client infrastructure layer."""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx

from feedpulse.ingestion.http_client import (
    APIKeyRotator,
    HTTPClient,
    HTTPClientError,
    RateLimitError,
    RetryConfig,
)


class TestAPIKeyRotator:
    """Tests for APIKeyRotator."""

    def test_from_env_var_with_multiple_keys(self):
        rotator = APIKeyRotator.from_env_var("key1,key2,key3")

        assert rotator is not None
        assert rotator.keys == ["key1", "key2", "key3"]
        assert rotator.key_count == 3

    def test_from_env_var_with_whitespace_and_empty_segments(self):
        rotator = APIKeyRotator.from_env_var("  key1  ,,  key2  , ")

        assert rotator is not None
        assert rotator.keys == ["key1", "key2"]

    def test_from_env_var_empty(self):
        assert APIKeyRotator.from_env_var(None) is None
        assert APIKeyRotator.from_env_var("") is None
        assert APIKeyRotator.from_env_var("   ") is None

    @pytest.mark.asyncio
    async def test_get_key_rotation(self):
        rotator = APIKeyRotator(keys=["x", "y", "z"])

        assert await rotator.get_key() == "x"
        assert await rotator.get_key() == "y"
        assert await rotator.get_key() == "z"
        assert await rotator.get_key() == "x"

    @pytest.mark.asyncio
    async def test_get_key_concurrent_access(self):
        rotator = APIKeyRotator(keys=["1", "2", "3"])

        results = await asyncio.gather(*[rotator.get_key() for _ in range(9)])

        assert results.count("1") == 3
        assert results.count("2") == 3
        assert results.count("3") == 3


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_default_values(self):
        config = RetryConfig()

        assert config.max_retries == 2
        assert config.max_backoff_seconds == 30.0
        assert config.base_delay == 1.0

    def test_calculate_backoff_exponential_and_capped(self):
        config = RetryConfig(base_delay=1.0, max_backoff_seconds=5.0, jitter_factor=0.0)

        assert config.calculate_backoff(0) == 1.0
        assert config.calculate_backoff(1) == 2.0
        assert config.calculate_backoff(2) == 4.0
        assert config.calculate_backoff(3) == 5.0  # Capped

    def test_calculate_backoff_with_jitter(self):
        config = RetryConfig(base_delay=1.0, jitter_factor=0.1)

        backoffs = [config.calculate_backoff(0) for _ in range(100)]

        assert all(1.0 <= b < 1.1 for b in backoffs)

    def test_is_retryable_status(self):
        config = RetryConfig()

        assert config.is_retryable_status(429) is True
        assert config.is_retryable_status(503) is True
        assert config.is_retryable_status(404) is False
        assert config.is_retryable_status(200) is False


class TestHTTPClient:
    """Tests for HTTPClient."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_json_success(self):
        respx.get("https://api.example.com/data").mock(
            return_value=httpx.Response(200, json={"result": "success"})
        )

        async with HTTPClient() as client:
            data = await client.get_json("https://api.example.com/data")

        assert data == {"result": "success"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_default_and_request_headers(self):
        route = respx.get("https://api.example.com/data").mock(
            return_value=httpx.Response(200, json={})
        )

        async with HTTPClient(headers={"Accept": "application/json"}) as client:
            await client.get("https://api.example.com/data", headers={"X-Test": "1"})

        request = route.calls.last.request
        assert request.headers["Accept"] == "application/json"
        assert request.headers["X-Test"] == "1"
        assert request.headers["User-Agent"].startswith("feedpulse/")

    @pytest.mark.asyncio
    @respx.mock
    async def test_api_key_in_header(self):
        route = respx.get("https://api.example.com/data").mock(
            return_value=httpx.Response(200, json={})
        )
        rotator = APIKeyRotator(keys=["test_api_key"])

        async with HTTPClient() as client:
            await client.get("https://api.example.com/data", api_key_rotator=rotator)

        assert route.calls.last.request.headers["Authorization"] == "Bearer test_api_key"

    @pytest.mark.asyncio
    @respx.mock
    async def test_retry_on_429_then_success(self):
        call_count = 0

        def side_effect(request):
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                return httpx.Response(429, text="Rate limited")
            return httpx.Response(200, json={"success": True})

        respx.get("https://api.example.com/data").mock(side_effect=side_effect)

        with patch("feedpulse.ingestion.http_client.asyncio.sleep", new=AsyncMock()) as sleep:
            async with HTTPClient(retry_config=RetryConfig(max_retries=2)) as client:
                response = await client.get("https://api.example.com/data")

        assert response.status_code == 200
        assert call_count == 2
        sleep.assert_awaited_once()

    @pytest.mark.asyncio
    @respx.mock
    async def test_rate_limit_error_after_exhaustion(self):
        respx.get("https://api.example.com/data").mock(return_value=httpx.Response(429))

        with patch("feedpulse.ingestion.http_client.asyncio.sleep", new=AsyncMock()):
            async with HTTPClient(retry_config=RetryConfig(max_retries=1)) as client:
                with pytest.raises(RateLimitError) as exc_info:
                    await client.get("https://api.example.com/data")

        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_retry_on_404(self):
        route = respx.get("https://api.example.com/data").mock(
            return_value=httpx.Response(404, text="missing")
        )

        async with HTTPClient(retry_config=RetryConfig(max_retries=3)) as client:
            with pytest.raises(HTTPClientError) as exc_info:
                await client.get("https://api.example.com/data")

        assert route.call_count == 1
        assert exc_info.value.status_code == 404
        assert exc_info.value.response_body == "missing"

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout_retried_then_raises(self):
        route = respx.get("https://api.example.com/data").mock(
            side_effect=httpx.ConnectTimeout("timed out")
        )

        with patch("feedpulse.ingestion.http_client.asyncio.sleep", new=AsyncMock()):
            async with HTTPClient(retry_config=RetryConfig(max_retries=2)) as client:
                with pytest.raises(HTTPClientError):
                    await client.get("https://api.example.com/data")

        assert route.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_invalid_json_raises_client_error(self):
        respx.get("https://api.example.com/data").mock(
            return_value=httpx.Response(200, text="<html>")
        )

        async with HTTPClient() as client:
            with pytest.raises(HTTPClientError, match="Invalid JSON"):
                await client.get_json("https://api.example.com/data")

    @pytest.mark.asyncio
    async def test_requires_context_manager(self):
        client = HTTPClient()
        with pytest.raises(RuntimeError):
            await client.get("https://api.example.com/data")
