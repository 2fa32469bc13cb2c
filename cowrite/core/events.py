"""
Async Event Bus for Cowrite turns.

Carries the lifecycle of a single orchestration turn:
- turn started / completed / failed
- agent lock acquired / released
- model text, tool calls (started, input, output, error)
- specialist delegations (started, finished)

Each streamed turn gets its own EventBus so the HTTP layer can forward
exactly one turn's events. Emit helpers accept an optional bus and fall
back to the global instance.
"""

import asyncio
from typing import Optional, Dict, Any, AsyncIterator, List
from datetime import datetime
from enum import Enum
import logging

logger = logging.getLogger(__name__)


# ============================================================================
# EVENT TYPES
# ============================================================================

class EventType(str, Enum):
    """Event types for the event bus."""

    # Turn lifecycle
    TURN_STARTED = "turn_started"
    TURN_COMPLETED = "turn_completed"
    TURN_FAILED = "turn_failed"

    # Lock events
    LOCK_ACQUIRED = "lock_acquired"
    LOCK_RELEASED = "lock_released"

    # Model output
    TEXT = "text"

    # Tool events
    TOOL_CALL_STARTED = "tool_call_started"
    TOOL_CALL_INPUT = "tool_call_input"
    TOOL_CALL_OUTPUT = "tool_call_output"
    TOOL_CALL_ERROR = "tool_call_error"

    # Delegation events
    DELEGATION_STARTED = "delegation_started"
    DELEGATION_FINISHED = "delegation_finished"


# ============================================================================
# EVENT MODEL
# ============================================================================

class Event:
    """
    Generic event container.

    Attributes:
        type: Event type (from EventType enum).
        data: Event payload (dict with event-specific data).
        timestamp: ISO timestamp of event creation.
    """

    def __init__(self, event_type: EventType, data: Optional[Dict[str, Any]] = None):
        self.type = event_type
        self.data = data or {}
        self.timestamp = datetime.now().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Wire form used by the NDJSON stream."""
        return {"type": self.type.value, "timestamp": self.timestamp, **self.data}

    def __repr__(self) -> str:
        return f"Event(type={self.type}, data={self.data}, timestamp={self.timestamp})"


# ============================================================================
# EVENT BUS
# ============================================================================

class EventBus:
    """
    Simple async event bus using asyncio.Queue.

    Supports:
    - Publishing events to all subscribers
    - Multiple concurrent subscribers
    - Clean shutdown (None sentinel)
    """

    def __init__(self):
        self._queues: List[asyncio.Queue] = []
        self._shutdown = False

        logger.debug("EventBus initialized")

    def subscribe(self) -> asyncio.Queue:
        """
        Subscribe to event stream.

        Returns:
            asyncio.Queue that will receive events.

        Example:
            >>> event_queue = event_bus.subscribe()
            >>> async for event in iter_queue(event_queue):
            ...     print(f"Received: {event.type}")
        """
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        logger.debug(f"New subscriber (total: {len(self._queues)})")
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._queues:
            self._queues.remove(queue)
            logger.debug(f"Subscriber removed (total: {len(self._queues)})")

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    async def publish(self, event: Event) -> None:
        """
        Publish event to all subscribers.

        Args:
            event: Event to publish.
        """
        if self._shutdown:
            logger.warning(f"EventBus is shutdown, ignoring event {event.type.value}")
            return

        for queue in self._queues:
            await queue.put(event)

        logger.debug(f"Published event: {event.type.value} to {len(self._queues)} subscribers")

    async def shutdown(self) -> None:
        """
        Shutdown event bus and clear all queues.

        Sends None sentinel to all queues to signal shutdown.
        """
        if self._shutdown:
            return
        self._shutdown = True

        for queue in self._queues:
            await queue.put(None)

        self._queues.clear()
        logger.debug("EventBus shutdown complete")


# ============================================================================
# GLOBAL EVENT BUS INSTANCE
# ============================================================================

_global_event_bus: Optional[EventBus] = None


def get_event_bus() -> EventBus:
    """
    Get global EventBus instance (singleton).

    Returns:
        Global EventBus instance.
    """
    global _global_event_bus
    if _global_event_bus is None:
        _global_event_bus = EventBus()
    return _global_event_bus


def reset_event_bus() -> None:
    """
    Reset global EventBus instance (for testing).

    WARNING: Only use in tests. Production code should never call this.
    """
    global _global_event_bus
    _global_event_bus = None


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

async def emit(
    event_type: EventType,
    data: Optional[Dict[str, Any]] = None,
    bus: Optional[EventBus] = None
) -> None:
    """
    Publish one event on `bus` (or the global bus).

    Args:
        event_type: Event type.
        data: Event payload.
        bus: Per-turn bus; None publishes on the global bus.
    """
    await (bus or get_event_bus()).publish(Event(event_type, data))


async def emit_turn_started(conversation_id: str, bus: Optional[EventBus] = None) -> None:
    await emit(EventType.TURN_STARTED, {"conversation_id": conversation_id}, bus)


async def emit_turn_completed(
    conversation_id: str,
    text: str,
    steps: int,
    bus: Optional[EventBus] = None
) -> None:
    await emit(
        EventType.TURN_COMPLETED,
        {"conversation_id": conversation_id, "text": text, "steps": steps},
        bus
    )


async def emit_turn_failed(conversation_id: str, error: str, bus: Optional[EventBus] = None) -> None:
    await emit(EventType.TURN_FAILED, {"conversation_id": conversation_id, "error": error}, bus)


async def emit_lock_acquired(conversation_id: str, bus: Optional[EventBus] = None) -> None:
    await emit(EventType.LOCK_ACQUIRED, {"conversation_id": conversation_id}, bus)


async def emit_lock_released(conversation_id: str, bus: Optional[EventBus] = None) -> None:
    await emit(EventType.LOCK_RELEASED, {"conversation_id": conversation_id}, bus)


async def emit_text(text: str, bus: Optional[EventBus] = None) -> None:
    """
    Emit model text produced during the turn.

    Args:
        text: Assistant text (may be intermediate, alongside tool calls).
    """
    await emit(EventType.TEXT, {"text": text}, bus)


async def emit_tool_call_started(
    call_id: str,
    tool_name: str,
    bus: Optional[EventBus] = None
) -> None:
    await emit(EventType.TOOL_CALL_STARTED, {"id": call_id, "tool": tool_name}, bus)


async def emit_tool_call_input(
    call_id: str,
    tool_name: str,
    args: Dict[str, Any],
    bus: Optional[EventBus] = None
) -> None:
    await emit(EventType.TOOL_CALL_INPUT, {"id": call_id, "tool": tool_name, "args": args}, bus)


async def emit_tool_call_output(
    call_id: str,
    tool_name: str,
    result: Any,
    bus: Optional[EventBus] = None
) -> None:
    await emit(EventType.TOOL_CALL_OUTPUT, {"id": call_id, "tool": tool_name, "result": result}, bus)


async def emit_tool_call_error(
    call_id: str,
    tool_name: str,
    error: str,
    bus: Optional[EventBus] = None
) -> None:
    await emit(EventType.TOOL_CALL_ERROR, {"id": call_id, "tool": tool_name, "error": error}, bus)


async def emit_delegation_started(task: Dict[str, Any], bus: Optional[EventBus] = None) -> None:
    """
    Emit a running delegation task.

    Args:
        task: DelegationTask as dict (id, agent_id, agent_name, status).
    """
    await emit(EventType.DELEGATION_STARTED, {"task": task}, bus)


async def emit_delegation_finished(task: Dict[str, Any], bus: Optional[EventBus] = None) -> None:
    await emit(EventType.DELEGATION_FINISHED, {"task": task}, bus)


# ============================================================================
# ASYNC QUEUE ITERATOR HELPER
# ============================================================================

async def iter_queue(queue: asyncio.Queue) -> AsyncIterator[Event]:
    """
    Async iterator for asyncio.Queue.

    Yields items from queue until None sentinel is received.

    Example:
        >>> queue = event_bus.subscribe()
        >>> async for event in iter_queue(queue):
        ...     print(event.type)
    """
    while True:
        item = await queue.get()
        if item is None:  # Shutdown sentinel
            break
        yield item


__all__ = [
    "EventType",
    "Event",
    "EventBus",
    "get_event_bus",
    "reset_event_bus",
    "emit",
    "emit_turn_started",
    "emit_turn_completed",
    "emit_turn_failed",
    "emit_lock_acquired",
    "emit_lock_released",
    "emit_text",
    "emit_tool_call_started",
    "emit_tool_call_input",
    "emit_tool_call_output",
    "emit_tool_call_error",
    "emit_delegation_started",
    "emit_delegation_finished",
    "iter_queue",
]
