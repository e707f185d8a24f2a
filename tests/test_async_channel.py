from __future__ import annotations

import asyncio

import pytest

from agent_bridge.utils.async_channel import AsyncChannel


@pytest.mark.asyncio
async def test_buffered_values_are_delivered_after_close() -> None:
    channel: AsyncChannel[int] = AsyncChannel()
    channel.enqueue(1)
    channel.enqueue(2)
    channel.close()

    assert [value async for value in channel] == [1, 2]


@pytest.mark.asyncio
async def test_reader_waits_for_enqueue() -> None:
    channel: AsyncChannel[str] = AsyncChannel()
    received = []

    async def reader() -> None:
        async for value in channel:
            received.append(value)

    task = asyncio.create_task(reader())
    await asyncio.sleep(0)
    channel.enqueue("hello")
    await asyncio.sleep(0)
    channel.close()
    await asyncio.wait_for(task, timeout=1)

    assert received == ["hello"]


@pytest.mark.asyncio
async def test_enqueue_after_close_fails() -> None:
    channel: AsyncChannel[int] = AsyncChannel()
    channel.close()
    assert channel.closed
    with pytest.raises(RuntimeError):
        channel.enqueue(1)


def test_second_iteration_fails() -> None:
    channel: AsyncChannel[int] = AsyncChannel()
    channel.__aiter__()
    with pytest.raises(RuntimeError, match="only be iterated once"):
        channel.__aiter__()
