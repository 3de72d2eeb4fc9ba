import asyncio

import pytest

from telemetry_core.emitter import EventBusEmitter
from telemetry_core.event_bus import EventBus
from tests.conftest import settle


@pytest.mark.asyncio
async def test_publish_delivers_to_event_bus():
    bus = EventBus()
    received = []

    async def handler(event_type, data):
        received.append((event_type, data))

    bus.subscribe("prom_ex.plugin.beam.memory", handler)
    emitter = EventBusEmitter(bus, buffer_size=8)
    await emitter.start()

    emitter.publish("prom_ex.plugin.beam.memory", {"total": 1000})
    await settle()
    await emitter.stop()

    [(event_type, data)] = received
    assert event_type == "prom_ex.plugin.beam.memory"
    assert data["measurements"] == {"total": 1000}
    assert data["tags"] == {}
    assert isinstance(data["timestamp"], float)
    assert emitter.published == 1


@pytest.mark.asyncio
async def test_publish_when_stopped_drops_sample():
    emitter = EventBusEmitter(EventBus())

    emitter.publish("k", {"count": 1})
    emitter.publish("k", {"count": 2})
    await settle()

    assert emitter.dropped == 2
    assert emitter.published == 0


@pytest.mark.asyncio
async def test_full_buffer_drops_without_blocking():
    bus = EventBus()
    gate = asyncio.Event()

    async def slow(event_type, data):
        await gate.wait()

    bus.subscribe("k", slow)
    emitter = EventBusEmitter(bus, buffer_size=2)
    await emitter.start()

    # первый sample забирается drain-задачей и висит в обработчике
    emitter.publish("k", {"count": 0})
    await settle()
    for i in range(1, 5):
        emitter.publish("k", {"count": i}, {"type": "normal"})

    assert emitter.dropped == 2

    gate.set()
    await emitter.stop()
    assert emitter.published == 3


@pytest.mark.asyncio
async def test_stop_flushes_accepted_samples():
    bus = EventBus()
    received = []

    async def handler(event_type, data):
        received.append(data["measurements"]["count"])

    bus.subscribe("k", handler)
    emitter = EventBusEmitter(bus)
    await emitter.start()
    for i in range(10):
        emitter.publish("k", {"count": i})

    await emitter.stop()

    assert received == list(range(10))
    assert not emitter.is_running


@pytest.mark.asyncio
async def test_handler_error_does_not_stop_delivery():
    bus = EventBus()
    received = []

    async def bad(event_type, data):
        raise RuntimeError("boom")

    async def good(event_type, data):
        received.append(data["measurements"])

    bus.subscribe("k", bad)
    bus.subscribe("k", good)
    emitter = EventBusEmitter(bus)
    await emitter.start()
    emitter.publish("k", {"count": 1})
    emitter.publish("k", {"count": 2})
    await emitter.stop()

    assert received == [{"count": 1}, {"count": 2}]


def test_buffer_size_must_be_positive():
    with pytest.raises(ValueError):
        EventBusEmitter(EventBus(), buffer_size=0)
