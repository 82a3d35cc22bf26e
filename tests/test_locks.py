"""
Tests for per-entity lock registries
"""

import asyncio

from utils.locks import EntityLockRegistry


class TestEntityLockRegistry:
    """Tests for EntityLockRegistry."""

    async def test_same_key_serializes(self):
        registry = EntityLockRegistry("test")
        events = []

        async def worker(name):
            async with registry.hold("record-1"):
                events.append(f"{name}-in")
                await asyncio.sleep(0.01)
                events.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert events in (
            ["a-in", "a-out", "b-in", "b-out"],
            ["b-in", "b-out", "a-in", "a-out"],
        )

    async def test_different_keys_do_not_contend(self):
        registry = EntityLockRegistry("test")
        inside = asyncio.Event()

        async def holder():
            async with registry.hold("record-1"):
                await inside.wait()

        task = asyncio.create_task(holder())
        await asyncio.sleep(0)
        async with registry.hold("record-2"):
            inside.set()
        await task

    async def test_idle_locks_are_discarded(self):
        registry = EntityLockRegistry("test")

        async with registry.hold("record-1"):
            assert len(registry) == 1

        assert len(registry) == 0
