"""
Tests for cowrite/core/events.py - EventBus.
"""


import pytest

from cowrite.core.events import (
    Event,
    EventBus,
    EventType,
    emit_lock_acquired,
    emit_turn_completed,
    get_event_bus,
    iter_queue,
    reset_event_bus,
)


class TestEventBus:
    """Tests for EventBus publish/subscribe."""

    @pytest.mark.asyncio
    async def test_every_subscriber_receives(self):
        bus = EventBus()
        first, second = bus.subscribe(), bus.subscribe()

        await emit_lock_acquired("c1", bus)

        for queue in (first, second):
            event = queue.get_nowait()
            assert event.type is EventType.LOCK_ACQUIRED
            assert event.data == {"conversation_id": "c1"}

    @pytest.mark.asyncio
    async def test_shutdown_ends_iteration(self):
        bus = EventBus()
        queue = bus.subscribe()

        await emit_turn_completed("c1", "done", 2, bus)
        await bus.shutdown()

        received = [event async for event in iter_queue(queue)]
        assert [e.type for e in received] == [EventType.TURN_COMPLETED]

    @pytest.mark.asyncio
    async def test_publish_after_shutdown_ignored(self):
        bus = EventBus()
        await bus.shutdown()
        queue = bus.subscribe()

        await bus.publish(Event(EventType.TEXT, {"text": "late"}))

        assert queue.empty()

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = EventBus()
        queue = bus.subscribe()
        bus.unsubscribe(queue)

        await emit_lock_acquired("c1", bus)

        assert queue.empty()

    def test_wire_form(self):
        event = Event(EventType.TEXT, {"text": "hi"})
        wire = event.to_dict()
        assert wire["type"] == "text"
        assert wire["text"] == "hi"
        assert "timestamp" in wire

    def test_global_bus_reset(self):
        bus = get_event_bus()
        assert get_event_bus() is bus
        reset_event_bus()
        assert get_event_bus() is not bus
