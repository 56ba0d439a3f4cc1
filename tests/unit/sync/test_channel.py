"""
Unit tests for MutationChannel (FIFO, overflow strategies, close).
"""

import asyncio

import pytest

from task_index_sync.errors import ChannelClosedError, QueueFullError
from task_index_sync.sync import MutationChannel

from .fakes import make_mutation


@pytest.mark.asyncio
async def test_fifo_order():
    """Mutations come out in the order they were put."""
    ch = MutationChannel(capacity=10)
    for i in range(5):
        await ch.put(make_mutation(id=i))
    assert ch.size == 5

    got = [(await ch.get()).id for _ in range(5)]
    assert got == [0, 1, 2, 3, 4]


@pytest.mark.asyncio
async def test_close_wakes_blocked_consumer():
    """A get() waiting on an empty channel raises once the channel closes."""
    ch = MutationChannel(capacity=5)
    waiter = asyncio.create_task(ch.get())
    await asyncio.sleep(0.01)
    assert not waiter.done()

    ch.close()
    with pytest.raises(ChannelClosedError):
        await asyncio.wait_for(waiter, timeout=0.5)


@pytest.mark.asyncio
async def test_close_drains_queued_mutations_first():
    """Queued mutations are still delivered after close()."""
    ch = MutationChannel(capacity=5)
    await ch.put(make_mutation(id=1))
    await ch.put(make_mutation(id=2))
    ch.close()

    assert (await ch.get()).id == 1
    assert (await ch.get()).id == 2
    with pytest.raises(ChannelClosedError):
        await ch.get()


@pytest.mark.asyncio
async def test_put_after_close_raises():
    ch = MutationChannel(capacity=5)
    ch.close()
    ch.close()  # idempotent
    assert ch.closed
    with pytest.raises(ChannelClosedError):
        await ch.put(make_mutation())


@pytest.mark.asyncio
async def test_get_receives_item_put_while_waiting():
    ch = MutationChannel(capacity=5)
    waiter = asyncio.create_task(ch.get())
    await asyncio.sleep(0)
    await ch.put(make_mutation(id=7))
    m = await asyncio.wait_for(waiter, timeout=0.5)
    assert m.id == 7
    assert ch.size == 0


@pytest.mark.asyncio
async def test_block_strategy_applies_backpressure():
    """put() waits for space when the channel is full."""
    ch = MutationChannel(capacity=2)
    await ch.put(make_mutation(id=1))
    await ch.put(make_mutation(id=2))

    producer = asyncio.create_task(ch.put(make_mutation(id=3)))
    await asyncio.sleep(0.01)
    assert not producer.done()

    assert (await ch.get()).id == 1
    await asyncio.wait_for(producer, timeout=0.5)
    assert ch.size == 2


@pytest.mark.asyncio
async def test_error_strategy():
    """Test error overflow strategy."""
    ch = MutationChannel(capacity=3, overflow_strategy="error")
    for i in range(3):
        await ch.put(make_mutation(id=i))

    with pytest.raises(QueueFullError):
        await ch.put(make_mutation(id=999))


@pytest.mark.asyncio
async def test_drop_oldest_strategy():
    """Test drop_oldest overflow strategy."""
    dropped = []

    async def on_drop(m):
        dropped.append(m.id)

    ch = MutationChannel(capacity=3, overflow_strategy="drop_oldest", drop_callback=on_drop)
    for i in range(3):
        await ch.put(make_mutation(id=i))

    await ch.put(make_mutation(id=99))
    assert ch.size == 3
    assert dropped == [0]

    items = [(await ch.get()).id for _ in range(3)]
    assert items == [1, 2, 99]


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        MutationChannel(capacity=0)


@pytest.mark.asyncio
async def test_drop_oldest_evicts_again_when_slot_is_taken_during_callback():
    dropped = []

    async def on_drop(m):
        dropped.append(m.id)
        await asyncio.sleep(0.01)

    ch = MutationChannel(capacity=1, overflow_strategy="drop_oldest", drop_callback=on_drop)
    await ch.put(make_mutation(id=1))

    await asyncio.gather(ch.put(make_mutation(id=2)), ch.put(make_mutation(id=3)))

    assert ch.size == 1
    assert (await ch.get()).id == 2
    assert dropped == [1, 3]
