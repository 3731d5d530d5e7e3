"""Tests for the event bus."""

import pytest

from procqueue.events.bus import EventBus, Event


@pytest.mark.asyncio
async def test_emit_and_subscribe():
    bus = EventBus()
    received = []

    async def handler(event: Event):
        received.append(event)

    bus.subscribe("worker.spawned", handler)
    await bus.emit("worker.spawned", {"request_id": "r1"})

    assert len(received) == 1
    assert received[0].topic == "worker.spawned"
    assert received[0].data["request_id"] == "r1"


@pytest.mark.asyncio
async def test_wildcard_subscribe():
    bus = EventBus()
    received = []

    async def handler(event: Event):
        received.append(event)

    bus.subscribe("worker.*", handler)
    await bus.emit("worker.spawned", {"id": "a1"})
    await bus.emit("worker.exited", {"id": "a2"})
    await bus.emit("launcher.idle")  # should NOT match

    assert len(received) == 2


@pytest.mark.asyncio
async def test_unsubscribe():
    bus = EventBus()
    received = []

    async def handler(event: Event):
        received.append(event)

    bus.subscribe("test", handler)
    await bus.emit("test")
    assert len(received) == 1

    bus.unsubscribe("test", handler)
    await bus.emit("test")
    assert len(received) == 1
    assert bus.subscriber_count == 0


@pytest.mark.asyncio
async def test_failing_handler_is_isolated():
    bus = EventBus()
    received = []

    async def broken(event: Event):
        raise RuntimeError("subscriber bug")

    async def fine(event: Event):
        received.append(event)

    bus.subscribe("*", broken)
    bus.subscribe("*", fine)
    event = await bus.emit("worker.exited", source="launcher")

    assert received == [event]
    assert event.source == "launcher"


@pytest.mark.asyncio
async def test_history_limit_and_filter():
    bus = EventBus(history_limit=5)
    for i in range(10):
        await bus.emit("worker.exited" if i % 2 else "worker.spawned", {"i": i})

    assert len(bus.history()) == 5
    assert bus.history()[0].data["i"] == 9
    assert all(e.topic == "worker.exited" for e in bus.history(topic_filter="*.exited"))
