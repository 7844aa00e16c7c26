"""Per-provider circuit breaker for LLM completions.

The stream worker runs many completions against one provider at once, so
the breaker differs from the channel breaker in
``feedpulse.notifications.channels`` in two ways:

- Only outages trip it. Timeouts, connection errors, HTTP 408/429 and 5xx
  count; a rejected request (400, 401, 404...) or a configuration error
  is the caller's problem and passes through without touching the state.
- While HALF_OPEN exactly one call is let through as the recovery trial;
  concurrent callers are refused until it settles.

Usage:
    breaker = ProviderCircuitBreaker("openai", failure_threshold=5)
    text = await breaker.call(provider.generate_completion, prompt, options)
"""

import logging
import time
from typing import Any, Callable, Coroutine, TypeVar

from feedpulse.errors import FeedPulseError
from feedpulse.notifications.channels import CircuitState

logger = logging.getLogger(__name__)

T = TypeVar("T")

OUTAGE_STATUS_CODES = frozenset({408, 429})


class CircuitOpenError(Exception):
    """Raised when a provider's circuit refuses the call."""

    def __init__(self, provider: str, retry_in: float) -> None:
        super().__init__(f"LLM provider {provider} circuit is open (retry in {retry_in:.0f}s)")
        self.provider = provider
        self.retry_in = retry_in


def counts_as_outage(exc: BaseException) -> bool:
    """True when ``exc`` says the provider is unhealthy rather than the request bad.

    Both SDKs put the HTTP status on ``status_code`` for API errors; errors
    without one (timeouts, dropped connections) are treated as outages.
    """
    if isinstance(exc, FeedPulseError):
        return False
    status = getattr(exc, "status_code", None)
    if not isinstance(status, int):
        return True
    return status >= 500 or status in OUTAGE_STATUS_CODES


class ProviderCircuitBreaker:
    """Breaker guarding one named LLM provider."""

    def __init__(
        self,
        provider: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
    ) -> None:
        self.provider = provider
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = 0.0
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def snapshot(self) -> dict[str, Any]:
        return {
            "provider": self.provider,
            "state": self._state.value,
            "consecutive_failures": self._consecutive_failures,
        }

    def _admit(self) -> None:
        if self._state == CircuitState.CLOSED:
            return
        if self._state == CircuitState.OPEN:
            waited = time.monotonic() - self._opened_at
            if waited < self._recovery_timeout:
                raise CircuitOpenError(self.provider, self._recovery_timeout - waited)
            self._state = CircuitState.HALF_OPEN
            logger.info("LLM provider %s: OPEN -> HALF_OPEN", self.provider)
        if self._trial_in_flight:
            raise CircuitOpenError(self.provider, 0.0)
        self._trial_in_flight = True

    async def call(
        self,
        fn: Callable[..., Coroutine[Any, Any, T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Run ``fn`` if the circuit admits it; exceptions are re-raised unchanged.

        Raises:
            CircuitOpenError: Circuit open, or a recovery trial already running.
        """
        self._admit()
        is_trial = self._state == CircuitState.HALF_OPEN
        try:
            result = await fn(*args, **kwargs)
        except Exception as e:
            if counts_as_outage(e):
                self._record_outage()
            elif is_trial:
                # The provider answered, so it is reachable again
                self._close()
            raise
        finally:
            if is_trial:
                self._trial_in_flight = False

        self._close()
        return result

    def _close(self) -> None:
        if self._state != CircuitState.CLOSED:
            logger.info("LLM provider %s: %s -> CLOSED", self.provider, self._state.name)
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0

    def _record_outage(self) -> None:
        self._consecutive_failures += 1
        if self._state == CircuitState.HALF_OPEN or (
            self._consecutive_failures >= self._failure_threshold
        ):
            if self._state != CircuitState.OPEN:
                logger.warning(
                    "LLM provider %s: %s -> OPEN after %d consecutive failures",
                    self.provider,
                    self._state.name,
                    self._consecutive_failures,
                )
            self._state = CircuitState.OPEN
            self._opened_at = time.monotonic()
