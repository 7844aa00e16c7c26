"""Exponential backoff with jitter for reconnect loops."""

import random


class ExponentialBackoff:
    """
    Delay calculator for supervised loops (queue consumer, stream worker).

    delay = min(base_delay * multiplier^attempt, max_delay), then jittered
    by up to ±jitter_range of itself. ``reset()`` after a healthy iteration.

    Usage:
        backoff = ExponentialBackoff(base_delay=1.0, max_delay=60.0)
        while running:
            try:
                await step()
                backoff.reset()
            except ConnectionError:
                await asyncio.sleep(backoff.next_delay())
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        multiplier: float = 2.0,
        jitter_range: float = 0.5,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter_range = jitter_range
        self._attempt = 0

    @property
    def attempt(self) -> int:
        """Consecutive failures since the last reset."""
        return self._attempt

    def exhausted(self, max_attempts: int) -> bool:
        return self._attempt >= max_attempts

    def next_delay(self) -> float:
        raw = min(self.base_delay * (self.multiplier**self._attempt), self.max_delay)
        self._attempt += 1
        jitter = raw * random.uniform(-self.jitter_range, self.jitter_range)
        return max(0.0, raw + jitter)

    def reset(self) -> None:
        self._attempt = 0
