"""Tests for per-key asyncio locks."""

import asyncio

import pytest

from src.shared.locks import KeyedLocks


class TestKeyedLocks:
    @pytest.mark.asyncio
    async def test_released_keys_are_dropped(self):
        locks = KeyedLocks()

        for i in range(100):
            async with locks.hold(f"ALT-{i}"):
                assert locks.locked(f"ALT-{i}")

        assert len(locks) == 0
        assert not locks.locked("ALT-0")

    @pytest.mark.asyncio
    async def test_same_key_serialized(self):
        locks = KeyedLocks()
        order: list[str] = []

        async def critical(name: str) -> None:
            async with locks.hold("RPT-1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0)
                order.append(f"{name}-out")

        await asyncio.gather(critical("a"), critical("b"), critical("c"))

        assert order == ["a-in", "a-out", "b-in", "b-out", "c-in", "c-out"]
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_waiter_keeps_lock_alive(self):
        locks = KeyedLocks()
        release = asyncio.Event()
        entered = []

        async def holder() -> None:
            async with locks.hold("k"):
                await release.wait()

        async def waiter() -> None:
            async with locks.hold("k"):
                entered.append(True)

        first = asyncio.create_task(holder())
        await asyncio.sleep(0)
        second = asyncio.create_task(waiter())
        await asyncio.sleep(0)

        assert len(locks) == 1
        release.set()
        await asyncio.gather(first, second)

        assert entered == [True]
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_cancelled_waiter_releases_its_claim(self):
        locks = KeyedLocks()

        async def waiter() -> None:
            async with locks.hold("k"):
                pass

        async with locks.hold("k"):
            task = asyncio.create_task(waiter())
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert len(locks) == 0
