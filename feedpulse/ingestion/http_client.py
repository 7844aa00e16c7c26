"""
HTTP infrastructure shared by the source adapters.

Provides:
- APIKeyRotator: Round-robin rotation for comma-separated tokens
- RetryConfig: Exponential backoff configuration
- HTTPClient: Async HTTP client with bounded timeout and automatic retry

Adapters keep only platform logic (URL building, payload parsing); every
request goes through HTTPClient so timeouts and retry policy are uniform.
Errors surface as HTTPClientError / RateLimitError, which BaseAdapter turns
into an empty fetch.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "feedpulse/0.1 (+https://github.com/feedpulse)"

RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 500, 502, 503, 504})


@dataclass
class APIKeyRotator:
    """
    Round-robin rotation over several tokens for the same service.

    Example:
        rotator = APIKeyRotator.from_env_var("tok1,tok2")
        token = await rotator.get_key()
    """

    keys: list[str]
    _current_index: int = field(default=0, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    @classmethod
    def from_env_var(cls, value: str | None) -> "APIKeyRotator | None":
        """Build a rotator from a comma-separated value; None if empty."""
        if not value:
            return None
        keys = [k.strip() for k in value.split(",") if k.strip()]
        if not keys:
            return None
        return cls(keys=keys)

    async def get_key(self) -> str:
        """Next key in rotation (safe under concurrent callers)."""
        async with self._lock:
            key = self.keys[self._current_index]
            self._current_index = (self._current_index + 1) % len(self.keys)
            return key

    @property
    def key_count(self) -> int:
        return len(self.keys)


@dataclass
class RetryConfig:
    """
    Exponential backoff configuration for HTTP retries.

    Formula: min(max_backoff, base_delay * 2^attempt) * (1 + random(0, jitter_factor))
    """

    max_retries: int = 2
    max_backoff_seconds: float = 30.0
    base_delay: float = 1.0
    jitter_factor: float = 0.1

    def calculate_backoff(self, attempt: int) -> float:
        """Backoff in seconds for a 0-indexed retry attempt."""
        delay = min(self.base_delay * (2**attempt), self.max_backoff_seconds)
        return delay + delay * self.jitter_factor * random.random()

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code in RETRYABLE_STATUS_CODES


class HTTPClientError(Exception):
    """Request failed (non-retryable status, or retries exhausted)."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class RateLimitError(HTTPClientError):
    """Raised when the upstream keeps answering 429 after all retries."""


class HTTPClient:
    """
    Async HTTP client with a bounded timeout and retry on transient failures.

    Retries on 429/5xx and on timeout/connect/read errors, with exponential
    backoff. An optional APIKeyRotator supplies a fresh token per attempt.

    Example:
        async with HTTPClient(timeout=15.0) as client:
            data = await client.get_json(
                "https://api.github.com/repos/o/r/events",
                params={"per_page": 30},
            )
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 15.0,
        headers: dict[str, str] | None = None,
    ):
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self._default_headers = {"User-Agent": DEFAULT_USER_AGENT, **(headers or {})}
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HTTPClient":
        self._client = httpx.AsyncClient(
            timeout=self.timeout,
            headers=self._default_headers,
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        api_key_rotator: APIKeyRotator | None = None,
        api_key_header: str = "Authorization",
        api_key_prefix: str = "Bearer ",
    ) -> httpx.Response:
        """GET with retry. Raises HTTPClientError / RateLimitError on failure."""
        return await self._request_with_retry(
            "GET",
            url,
            params=params,
            headers=headers,
            api_key_rotator=api_key_rotator,
            api_key_header=api_key_header,
            api_key_prefix=api_key_prefix,
        )

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        """GET and decode the JSON body."""
        response = await self.get(url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise HTTPClientError(
                f"Invalid JSON from {url}: {e}",
                status_code=response.status_code,
                response_body=response.text[:500],
            ) from e

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        api_key_rotator: APIKeyRotator | None = None,
        api_key_header: str = "Authorization",
        api_key_prefix: str = "",
    ) -> httpx.Response:
        if not self._client:
            raise RuntimeError("HTTPClient must be used as async context manager")

        max_attempts = self.retry_config.max_retries + 1
        last_status_code: int | None = None
        last_body: str | None = None

        for attempt in range(max_attempts):
            request_headers = dict(headers) if headers else {}
            if api_key_rotator:
                key = await api_key_rotator.get_key()
                request_headers[api_key_header] = f"{api_key_prefix}{key}"

            try:
                response = await self._client.request(
                    method,
                    url,
                    params=params or None,
                    headers=request_headers or None,
                )
            except (httpx.TimeoutException, httpx.ConnectError, httpx.ReadError) as e:
                if attempt + 1 < max_attempts:
                    backoff = self.retry_config.calculate_backoff(attempt)
                    logger.warning(
                        "%s for %s, attempt %d/%d, backing off %.2fs",
                        type(e).__name__, url, attempt + 1, max_attempts, backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                raise HTTPClientError(
                    f"Request to {url} failed after {attempt + 1} attempts: {e}",
                    status_code=last_status_code,
                ) from e

            if self.retry_config.is_retryable_status(response.status_code):
                last_status_code = response.status_code
                last_body = response.text
                if attempt + 1 < max_attempts:
                    backoff = self.retry_config.calculate_backoff(attempt)
                    logger.warning(
                        "Retryable status %d from %s, attempt %d/%d, backing off %.2fs",
                        response.status_code, url, attempt + 1, max_attempts, backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue

                error_cls = RateLimitError if response.status_code == 429 else HTTPClientError
                raise error_cls(
                    f"Request to {url} failed with status {response.status_code} "
                    f"after {attempt + 1} attempts",
                    status_code=response.status_code,
                    response_body=last_body,
                )

            if response.status_code >= 400:
                raise HTTPClientError(
                    f"Request to {url} failed with status {response.status_code}",
                    status_code=response.status_code,
                    response_body=response.text,
                )

            return response

        raise HTTPClientError(
            f"Request to {url} failed after {max_attempts} attempts",
            status_code=last_status_code,
            response_body=last_body,
        )
