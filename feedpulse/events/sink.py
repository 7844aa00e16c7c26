"""Best-effort real-time event sink.

Processing emits ``log``, ``notification_sent`` and ``notification_failed``
events for live dashboards. Delivery is fire-and-forget over Redis
pub/sub: a publish failure is logged and never fails the caller.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_EVENTS_CHANNEL = "feedpulse:events"


class EventSink(ABC):
    """Destination for real-time pipeline events."""

    @abstractmethod
    async def emit(self, event: str, payload: dict[str, Any]) -> bool:
        """Emit one event. Returns True if it was handed off."""
        ...


class RedisEventSink(EventSink):
    """Publishes ``{"type": event, "data": payload}`` JSON on a pub/sub channel."""

    def __init__(self, redis_client: Any, channel: str = DEFAULT_EVENTS_CHANNEL) -> None:
        self._redis = redis_client
        self._channel = channel

    @property
    def channel(self) -> str:
        return self._channel

    async def emit(self, event: str, payload: dict[str, Any]) -> bool:
        try:
            message = json.dumps({"type": event, "data": payload}, default=str)
            await self._redis.publish(self._channel, message)
            return True
        except Exception as e:
            logger.warning("Failed to publish %s event: %s", event, e)
            return False


class NullEventSink(EventSink):
    """Discards events; used when no Redis connection is configured."""

    async def emit(self, event: str, payload: dict[str, Any]) -> bool:
        return False
