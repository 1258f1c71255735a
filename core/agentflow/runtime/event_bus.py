"""
Event Bus - Pub/sub for flow run lifecycle events.

Allows callers to:
- Observe runs as they start, finish, fail or get cancelled
- Follow node progress (started, completed, ignored)
- Wait for a specific event, e.g. in tests or a streaming layer
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    """Types of events that can be published."""

    # Run lifecycle
    RUN_STARTED = "run_started"
    RUN_COMPLETED = "run_completed"
    RUN_FAILED = "run_failed"
    RUN_CANCELLED = "run_cancelled"

    # Node lifecycle
    NODE_STARTED = "node_started"
    NODE_COMPLETED = "node_completed"
    NODE_IGNORED = "node_ignored"

    # Custom events
    CUSTOM = "custom"


@dataclass
class FlowEvent:
    """An event emitted while running a flow."""

    type: EventType
    flow_id: str
    run_id: str | None = None
    node_id: str | None = None  # Which node emitted this event
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "type": self.type.value,
            "flow_id": self.flow_id,
            "run_id": self.run_id,
            "node_id": self.node_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


# Type for event handlers
EventHandler = Callable[[FlowEvent], Awaitable[None]]


@dataclass
class Subscription:
    """A subscription to events."""

    id: str
    event_types: set[EventType]
    handler: EventHandler
    filter_flow: str | None = None  # Only receive events from this flow
    filter_node: str | None = None  # Only receive events from this node
    filter_run: str | None = None  # Only receive events from this run


class EventBus:
    """
    Pub/sub event bus for flow runs.

    Features:
    - Async event handling
    - Type-based subscriptions
    - Flow/run/node filtering
    - Event history for debugging

    Example:
        bus = EventBus()

        async def on_node_done(event: FlowEvent):
            print(f"{event.node_id} finished in run {event.run_id}")

        bus.subscribe(event_types=[EventType.NODE_COMPLETED], handler=on_node_done)

        executor = FlowExecutor(registry, event_bus=bus)
    """

    def __init__(
        self,
        max_history: int = 1000,
        max_concurrent_handlers: int = 10,
    ):
        """
        Initialize event bus.

        Args:
            max_history: Maximum events to keep in history
            max_concurrent_handlers: Maximum concurrent handler executions
        """
        self._subscriptions: dict[str, Subscription] = {}
        self._event_history: list[FlowEvent] = []
        self._max_history = max_history
        self._semaphore = asyncio.Semaphore(max_concurrent_handlers)
        self._subscription_counter = 0
        self._lock = asyncio.Lock()

    def subscribe(
        self,
        event_types: list[EventType],
        handler: EventHandler,
        filter_flow: str | None = None,
        filter_node: str | None = None,
        filter_run: str | None = None,
    ) -> str:
        """
        Subscribe to events.

        Returns:
            Subscription ID (use to unsubscribe)
        """
        self._subscription_counter += 1
        sub_id = f"sub_{self._subscription_counter}"
        self._subscriptions[sub_id] = Subscription(
            id=sub_id,
            event_types=set(event_types),
            handler=handler,
            filter_flow=filter_flow,
            filter_node=filter_node,
            filter_run=filter_run,
        )
        logger.debug(f"Subscription {sub_id} registered for {event_types}")
        return sub_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove a subscription; True if it existed."""
        if subscription_id in self._subscriptions:
            del self._subscriptions[subscription_id]
            logger.debug(f"Subscription {subscription_id} removed")
            return True
        return False

    async def publish(self, event: FlowEvent) -> None:
        """Publish an event to all matching subscribers."""
        async with self._lock:
            self._event_history.append(event)
            if len(self._event_history) > self._max_history:
                self._event_history = self._event_history[-self._max_history :]

        matching_handlers = [
            sub.handler for sub in self._subscriptions.values() if self._matches(sub, event)
        ]
        if matching_handlers:
            await self._execute_handlers(event, matching_handlers)

    def _matches(self, subscription: Subscription, event: FlowEvent) -> bool:
        """Check if a subscription matches an event."""
        if event.type not in subscription.event_types:
            return False
        if subscription.filter_flow and subscription.filter_flow != event.flow_id:
            return False
        if subscription.filter_node and subscription.filter_node != event.node_id:
            return False
        if subscription.filter_run and subscription.filter_run != event.run_id:
            return False
        return True

    async def _execute_handlers(
        self,
        event: FlowEvent,
        handlers: list[EventHandler],
    ) -> None:
        """Execute handlers concurrently with rate limiting."""

        async def run_handler(handler: EventHandler) -> None:
            async with self._semaphore:
                try:
                    await handler(event)
                except Exception as e:
                    logger.error(f"Handler error for {event.type}: {e}")

        await asyncio.gather(*[run_handler(h) for h in handlers], return_exceptions=True)

    # === CONVENIENCE PUBLISHERS ===

    async def emit_run_started(
        self, flow_id: str, run_id: str, input_data: Any = None, is_recursive: bool = False
    ) -> None:
        await self.publish(
            FlowEvent(
                type=EventType.RUN_STARTED,
                flow_id=flow_id,
                run_id=run_id,
                data={"input": input_data, "is_recursive": is_recursive},
            )
        )

    async def emit_run_completed(self, flow_id: str, run_id: str, path: list[str]) -> None:
        await self.publish(
            FlowEvent(
                type=EventType.RUN_COMPLETED,
                flow_id=flow_id,
                run_id=run_id,
                data={"path": list(path)},
            )
        )

    async def emit_run_failed(
        self, flow_id: str, run_id: str, error: str, pending_nodes: list[str] | None = None
    ) -> None:
        await self.publish(
            FlowEvent(
                type=EventType.RUN_FAILED,
                flow_id=flow_id,
                run_id=run_id,
                data={"error": error, "pending_nodes": list(pending_nodes or [])},
            )
        )

    async def emit_run_cancelled(self, flow_id: str, run_id: str, reason: str | None) -> None:
        await self.publish(
            FlowEvent(
                type=EventType.RUN_CANCELLED,
                flow_id=flow_id,
                run_id=run_id,
                data={"reason": reason},
            )
        )

    async def emit_node_started(
        self, flow_id: str, run_id: str, node_id: str, node_kind: str
    ) -> None:
        await self.publish(
            FlowEvent(
                type=EventType.NODE_STARTED,
                flow_id=flow_id,
                run_id=run_id,
                node_id=node_id,
                data={"kind": node_kind},
            )
        )

    async def emit_node_completed(
        self,
        flow_id: str,
        run_id: str,
        node_id: str,
        has_error: bool = False,
        latency_ms: int | None = None,
    ) -> None:
        await self.publish(
            FlowEvent(
                type=EventType.NODE_COMPLETED,
                flow_id=flow_id,
                run_id=run_id,
                node_id=node_id,
                data={"has_error": has_error, "latency_ms": latency_ms},
            )
        )

    async def emit_node_ignored(
        self, flow_id: str, run_id: str, node_id: str, pruned_by: str | None = None
    ) -> None:
        await self.publish(
            FlowEvent(
                type=EventType.NODE_IGNORED,
                flow_id=flow_id,
                run_id=run_id,
                node_id=node_id,
                data={"pruned_by": pruned_by},
            )
        )

    # === QUERY OPERATIONS ===

    def get_history(
        self,
        event_type: EventType | None = None,
        flow_id: str | None = None,
        run_id: str | None = None,
        limit: int = 100,
    ) -> list[FlowEvent]:
        """
        Get event history with optional filtering.

        Returns:
            List of matching events (most recent first)
        """
        events = self._event_history[::-1]

        if event_type:
            events = [e for e in events if e.type == event_type]
        if flow_id:
            events = [e for e in events if e.flow_id == flow_id]
        if run_id:
            events = [e for e in events if e.run_id == run_id]

        return events[:limit]

    def get_stats(self) -> dict:
        """Get event bus statistics."""
        type_counts: dict[str, int] = {}
        for event in self._event_history:
            type_counts[event.type.value] = type_counts.get(event.type.value, 0) + 1

        return {
            "total_events": len(self._event_history),
            "subscriptions": len(self._subscriptions),
            "events_by_type": type_counts,
        }

    # === WAITING OPERATIONS ===

    async def wait_for(
        self,
        event_type: EventType,
        flow_id: str | None = None,
        node_id: str | None = None,
        run_id: str | None = None,
        timeout: float | None = None,
    ) -> FlowEvent | None:
        """
        Wait for a specific event to occur.

        Returns:
            The event if received, None if timeout
        """
        result: FlowEvent | None = None
        event_received = asyncio.Event()

        async def handler(event: FlowEvent) -> None:
            nonlocal result
            result = event
            event_received.set()

        sub_id = self.subscribe(
            event_types=[event_type],
            handler=handler,
            filter_flow=flow_id,
            filter_node=node_id,
            filter_run=run_id,
        )

        try:
            if timeout:
                try:
                    await asyncio.wait_for(event_received.wait(), timeout=timeout)
                except TimeoutError:
                    return None
            else:
                await event_received.wait()

            return result
        finally:
            self.unsubscribe(sub_id)
