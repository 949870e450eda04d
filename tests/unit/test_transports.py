"""Transport tests."""

import asyncio

import pytest

from novaflow.contracts import ChangeEvent, QueueStatus
from novaflow.transports import InMemoryTransport, get_transport


def _event(subject="artefact-1"):
    return ChangeEvent(
        subject_id=subject,
        actor_id="user-1",
        new_status=QueueStatus.COMPLETED,
        linked_run_id="run-1",
    )


@pytest.mark.asyncio
async def test_inmemory_transport():
    """Every subscriber of an actor receives published events."""
    transport = get_transport("inmemory")
    assert isinstance(transport, InMemoryTransport)

    received = []

    async def consume():
        async for event in transport.subscribe("user-1", lifespan=0.5):
            received.append(event)
            if len(received) == 2:
                break

    consumer = asyncio.create_task(consume())
    while transport.subscriber_count("user-1") == 0:
        await asyncio.sleep(0.01)

    await transport.publish("user-1", _event())
    await transport.publish("user-2", _event("elsewhere"))
    await transport.publish("user-1", _event())
    await consumer

    assert [e.subject_id for e in received] == ["artefact-1", "artefact-1"]


@pytest.mark.asyncio
async def test_inmemory_fan_out_and_unsubscribe():
    transport = InMemoryTransport()
    first, second = [], []

    async def consume(sink):
        async for event in transport.subscribe("user-1", lifespan=0.3):
            sink.append(event)

    tasks = [asyncio.create_task(consume(first)), asyncio.create_task(consume(second))]
    while transport.subscriber_count("user-1") < 2:
        await asyncio.sleep(0.01)

    await transport.publish("user-1", _event())
    await asyncio.gather(*tasks)

    assert len(first) == len(second) == 1
    assert transport.subscriber_count("user-1") == 0


@pytest.mark.asyncio
async def test_publish_without_subscribers_is_dropped():
    transport = InMemoryTransport()
    await transport.publish("user-1", _event())
    assert transport.subscriber_count("user-1") == 0


def test_unknown_transport_rejected():
    with pytest.raises(ValueError):
        get_transport("carrier-pigeon")


@pytest.mark.asyncio
async def test_redis_transport_import():
    """Redis transport can be constructed without a server."""
    from novaflow.transports.redis import RedisTransport

    transport = RedisTransport()
    assert transport.host == "localhost"
    assert transport.port == 6379
    assert RedisTransport.channel_name("user-1") == "novaflow:changes:user-1"


@pytest.mark.asyncio
async def test_redis_transport_round_trip():
    from novaflow.transports.redis import RedisTransport

    transport = RedisTransport()
    try:
        await transport.connect()
    except Exception:
        pytest.skip("Redis server not available")

    received = []

    async def consume():
        async for event in transport.subscribe("user-1", lifespan=3):
            received.append(event)
            break

    consumer = asyncio.create_task(consume())
    await asyncio.sleep(0.2)
    await transport.publish("user-1", _event())
    await consumer
    await transport.disconnect()

    assert received[0].linked_run_id == "run-1"
