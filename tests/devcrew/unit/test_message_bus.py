"""
Unit tests for MessageBus
"""

import asyncio
import dataclasses

import pytest

from devcrew.runtime.message_bus import MessageBus
from devcrew.runtime.types import BROADCAST, Message, MessageType


def _msg(recipient: str, content: str = "hi", sender: str = "User") -> Message:
    return Message(sender=sender, recipient=recipient, content=content)


@pytest.mark.asyncio
async def test_publish_delivers_to_named_subscriber(bus):
    """Test recipient-keyed delivery"""
    analyst = bus.subscribe("Analyst")
    designer = bus.subscribe("Designer")

    delivered = await bus.publish(_msg("Analyst", "control console app"))

    assert delivered == 1
    assert analyst.qsize() == 1
    assert designer.qsize() == 0

    message = await analyst.get()
    assert message.content == "control console app"
    assert message.type == MessageType.TASK_REQUEST


@pytest.mark.asyncio
async def test_publish_without_subscriber_is_silent_drop(bus):
    """Publishing to nobody neither raises nor reaches other subscribers"""
    other = bus.subscribe("Designer")

    delivered = await bus.publish(_msg("Nobody"))

    assert delivered == 0
    assert other.qsize() == 0


@pytest.mark.asyncio
async def test_broadcast_reaches_every_named_subscriber(bus):
    a = bus.subscribe("A")
    b = bus.subscribe("B")

    delivered = await bus.publish(_msg(BROADCAST))

    assert delivered == 2
    assert (await a.get()).recipient == BROADCAST
    assert (await b.get()).recipient == BROADCAST


@pytest.mark.asyncio
async def test_observer_sees_every_message(bus):
    observer = bus.subscribe_all()
    bus.subscribe("A")

    await bus.publish(_msg("A", "one"))
    await bus.publish(_msg("Nobody", "two"))

    assert [(await observer.get()).content for _ in range(2)] == ["one", "two"]


@pytest.mark.asyncio
async def test_per_recipient_order_is_publish_order(bus):
    inbox = bus.subscribe("A")
    for i in range(20):
        await bus.publish(_msg("A", str(i)))

    received = [(await inbox.get()).content for _ in range(20)]
    assert received == [str(i) for i in range(20)]


@pytest.mark.asyncio
async def test_publish_does_not_wait_for_slow_subscriber(bus):
    """A subscriber that never reads does not block the publisher"""
    bus.subscribe("Slow")

    for i in range(1000):
        await asyncio.wait_for(bus.publish(_msg("Slow", str(i))), timeout=1.0)

    assert bus.subscriber_count("Slow") == 1


@pytest.mark.asyncio
async def test_close_subscription_drains_then_stops(bus):
    inbox = bus.subscribe("A")
    await bus.publish(_msg("A", "queued"))

    inbox.close()
    await bus.publish(_msg("A", "late"))

    received = [m.content async for m in inbox]
    assert received == ["queued"]
    assert bus.subscriber_count("A") == 0


@pytest.mark.asyncio
async def test_subscription_context_manager_detaches(bus):
    async with bus.subscribe("A") as inbox:
        assert bus.subscriber_count("A") == 1
    assert inbox.closed
    assert bus.subscriber_count("A") == 0


@pytest.mark.asyncio
async def test_bus_close_ends_all_iterations():
    bus = MessageBus()
    inbox = bus.subscribe("A")
    observer = bus.subscribe_all()

    bus.close()

    assert bus.is_closed()
    assert [m async for m in inbox] == []
    assert [m async for m in observer] == []
    assert await bus.publish(_msg("A")) == 0
    with pytest.raises(RuntimeError):
        bus.subscribe("B")


@pytest.mark.asyncio
async def test_iteration_waits_for_messages(bus):
    inbox = bus.subscribe("A")
    received = []

    async def consume():
        async for message in inbox:
            received.append(message.content)
            if len(received) == 2:
                break

    consumer = asyncio.create_task(consume())
    await asyncio.sleep(0)
    await bus.publish(_msg("A", "first"))
    await bus.publish(_msg("A", "second"))
    await asyncio.wait_for(consumer, timeout=1.0)

    assert received == ["first", "second"]


def test_message_is_frozen_but_metadata_is_mutable():
    message = _msg("A")
    with pytest.raises(dataclasses.FrozenInstanceError):
        message.content = "changed"

    message.metadata["SessionId"] = "s1"
    assert message.session_id == "s1"
    assert message.to_dict()["metadata"] == {"SessionId": "s1"}


def test_message_ids_are_unique():
    assert len({_msg("A").id for _ in range(100)}) == 100
