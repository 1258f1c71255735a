"""Runtime collaborators shared across flow runs."""

from agentflow.runtime.abort import AbortRegistry, AbortToken, session_key
from agentflow.runtime.cache_pool import CachePool
from agentflow.runtime.event_bus import EventBus, EventType, FlowEvent

__all__ = [
    "AbortRegistry",
    "AbortToken",
    "CachePool",
    "EventBus",
    "EventType",
    "FlowEvent",
    "session_key",
]
