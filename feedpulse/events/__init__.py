"""
Real-time pipeline events.

Components:
- EventSink: Abstract emit(event, payload) contract
- RedisEventSink: JSON over Redis pub/sub
- NullEventSink: No-op sink
"""

from feedpulse.events.sink import EventSink, NullEventSink, RedisEventSink

__all__ = [
    "EventSink",
    "NullEventSink",
    "RedisEventSink",
]
