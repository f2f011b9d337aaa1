"""Tests for per-product write locks."""

import asyncio

import pytest

from trendwatch.ingest.product_locks import ProductLockRegistry


@pytest.mark.asyncio
async def test_locks_released_after_use():
    locks = ProductLockRegistry()

    for product_id in range(50):
        async with locks.hold(product_id):
            assert len(locks) == 1

    assert len(locks) == 0


@pytest.mark.asyncio
async def test_waiter_keeps_lock_alive():
    locks = ProductLockRegistry()
    order = []
    first_in = asyncio.Event()

    async def writer(name):
        async with locks.hold(7):
            order.append(f"{name}-start")
            first_in.set()
            await asyncio.sleep(0.01)
            order.append(f"{name}-end")

    first = asyncio.create_task(writer("a"))
    await first_in.wait()
    second = asyncio.create_task(writer("b"))
    await asyncio.gather(first, second)

    assert order == ["a-start", "a-end", "b-start", "b-end"]
    assert len(locks) == 0


@pytest.mark.asyncio
async def test_multi_product_hold_excludes_single_writer():
    locks = ProductLockRegistry()
    order = []
    merging = asyncio.Event()

    async def merge():
        async with locks.hold(2, 1):
            merging.set()
            await asyncio.sleep(0.01)
            order.append("merge")

    async def write():
        await merging.wait()
        async with locks.hold(1):
            order.append("write")

    await asyncio.gather(merge(), write())

    assert order == ["merge", "write"]
    assert len(locks) == 0
