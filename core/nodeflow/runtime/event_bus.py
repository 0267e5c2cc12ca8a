"""
Event Bus - Pub/sub telemetry for graph runs.

The engine publishes run lifecycle and pulse-highlight events here instead
of threading highlight fields through its algorithms. A host UI subscribes
to NODE_PULSED / CONNECTION_PULSED to animate the canvas; nothing in the
engine reads these events back.
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
    RUN_STOPPED = "run_stopped"
    RUN_PAUSED = "run_paused"

    # Pulse highlights
    NODE_PULSED = "node_pulsed"
    CONNECTION_PULSED = "connection_pulsed"


@dataclass
class EngineEvent:
    """An event emitted during a run."""

    type: EventType
    run_id: str
    node_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "type": self.type.value,
            "run_id": self.run_id,
            "node_id": self.node_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


# Type for event handlers
EventHandler = Callable[[EngineEvent], Awaitable[None]]


@dataclass
class Subscription:
    """A subscription to events."""

    id: str
    event_types: set[EventType]
    handler: EventHandler
    filter_run: str | None = None  # Only receive events from this run
    filter_node: str | None = None  # Only receive events about this node


class EventBus:
    """
    Pub/sub event bus for run telemetry.

    Example:
        bus = EventBus()

        async def on_pulse(event: EngineEvent):
            print(f"pulse {event.data['pulse_key']} on {event.node_id}")

        bus.subscribe(event_types=[EventType.NODE_PULSED], handler=on_pulse)
        engine = GraphEngine(event_bus=bus)
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
        self._event_history: list[EngineEvent] = []
        self._max_history = max_history
        self._semaphore = asyncio.Semaphore(max_concurrent_handlers)
        self._subscription_counter = 0
        self._pulse_counter = 0

    def subscribe(
        self,
        event_types: list[EventType],
        handler: EventHandler,
        filter_run: str | None = None,
        filter_node: str | None = None,
    ) -> str:
        """
        Subscribe to events.

        Args:
            event_types: Types of events to receive
            handler: Async function to call when event occurs
            filter_run: Only receive events from this run
            filter_node: Only receive events about this node

        Returns:
            Subscription ID (use to unsubscribe)
        """
        self._subscription_counter += 1
        sub_id = f"sub_{self._subscription_counter}"

        self._subscriptions[sub_id] = Subscription(
            id=sub_id,
            event_types=set(event_types),
            handler=handler,
            filter_run=filter_run,
            filter_node=filter_node,
        )
        logger.debug(f"Subscription {sub_id} registered for {event_types}")
        return sub_id

    def unsubscribe(self, subscription_id: str) -> bool:
        if subscription_id in self._subscriptions:
            del self._subscriptions[subscription_id]
            logger.debug(f"Subscription {subscription_id} removed")
            return True
        return False

    async def publish(self, event: EngineEvent) -> None:
        """Publish an event to all matching subscribers."""
        self._event_history.append(event)
        if len(self._event_history) > self._max_history:
            self._event_history = self._event_history[-self._max_history :]

        matching_handlers = [
            sub.handler for sub in self._subscriptions.values() if self._matches(sub, event)
        ]
        if matching_handlers:
            await self._execute_handlers(event, matching_handlers)

    def _matches(self, subscription: Subscription, event: EngineEvent) -> bool:
        if event.type not in subscription.event_types:
            return False
        if subscription.filter_run and subscription.filter_run != event.run_id:
            return False
        if subscription.filter_node and subscription.filter_node != event.node_id:
            return False
        return True

    async def _execute_handlers(
        self,
        event: EngineEvent,
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

    def get_history(
        self,
        event_type: EventType | None = None,
        run_id: str | None = None,
        limit: int = 100,
    ) -> list[EngineEvent]:
        """Most recent events, optionally filtered."""
        events = [
            e
            for e in self._event_history
            if (event_type is None or e.type == event_type)
            and (run_id is None or e.run_id == run_id)
        ]
        return events[-limit:]

    def clear_history(self) -> None:
        self._event_history.clear()

    # === CONVENIENCE PUBLISHERS ===

    async def emit_run_started(self, run_id: str, mode: str, target: str | None = None) -> None:
        """Emit run started event. `mode` is "resolve" or "dispatch"."""
        await self.publish(
            EngineEvent(
                type=EventType.RUN_STARTED,
                run_id=run_id,
                data={"mode": mode, "target": target},
            )
        )

    async def emit_run_finished(
        self,
        run_id: str,
        status: str,
        error: str | None = None,
        paused_node_id: str | None = None,
        steps: int = 0,
    ) -> None:
        """Emit the lifecycle event matching a run's final status."""
        event_type = {
            "completed": EventType.RUN_COMPLETED,
            "error": EventType.RUN_FAILED,
            "stopped": EventType.RUN_STOPPED,
            "paused": EventType.RUN_PAUSED,
        }.get(status)
        if event_type is None:
            return
        await self.publish(
            EngineEvent(
                type=event_type,
                run_id=run_id,
                node_id=paused_node_id,
                data={"status": status, "error": error, "steps": steps},
            )
        )

    async def emit_node_pulsed(self, run_id: str, node_id: str, operation_type: str) -> None:
        """Emit a momentary highlight for a node that just received a pulse."""
        self._pulse_counter += 1
        await self.publish(
            EngineEvent(
                type=EventType.NODE_PULSED,
                run_id=run_id,
                node_id=node_id,
                data={"operation_type": operation_type, "pulse_key": self._pulse_counter},
            )
        )

    async def emit_connection_pulsed(
        self,
        run_id: str,
        connection_id: str,
        source_node_id: str,
        target_node_id: str,
    ) -> None:
        """Emit a momentary highlight for a connection carrying a pulse."""
        self._pulse_counter += 1
        await self.publish(
            EngineEvent(
                type=EventType.CONNECTION_PULSED,
                run_id=run_id,
                node_id=source_node_id,
                data={
                    "connection_id": connection_id,
                    "target_node_id": target_node_id,
                    "pulse_key": self._pulse_counter,
                },
            )
        )
