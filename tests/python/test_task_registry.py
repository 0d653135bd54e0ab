"""Tests for the call task registry."""

import asyncio
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../../python'))

from duplex_call.core.task_registry import TaskRegistry


class TestTaskRegistry:
    """Test TaskRegistry."""

    @pytest.mark.asyncio
    async def test_register_tracks_task(self):
        registry = TaskRegistry()
        event = asyncio.Event()

        task = registry.register("waiter", event.wait())

        assert registry.active_count == 1
        assert task.get_name() == "waiter"
        assert "waiter" in registry.get_active_tasks()

        event.set()
        await task
        await asyncio.sleep(0)
        assert registry.active_count == 0
        assert registry.finished_count == 1

    @pytest.mark.asyncio
    async def test_failed_task_recorded(self):
        registry = TaskRegistry()

        async def boom():
            raise RuntimeError("boom")

        task = registry.register("boom", boom())
        with pytest.raises(RuntimeError):
            await task
        await asyncio.sleep(0)

        assert list(registry.failures) == ["boom"]
        assert isinstance(registry.failures["boom"], RuntimeError)

    @pytest.mark.asyncio
    async def test_reregister_replaces(self):
        """Test an old task finishing does not evict its replacement."""
        registry = TaskRegistry()
        first_done = asyncio.Event()

        first = registry.register("playback", first_done.wait())
        second = registry.register("playback", asyncio.sleep(10))

        first_done.set()
        await first
        await asyncio.sleep(0)

        assert registry.get_active_tasks()["playback"] is second
        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_cancel_task(self):
        registry = TaskRegistry()
        task = registry.register("sleeper", asyncio.sleep(10))

        assert await registry.cancel_task("sleeper")
        assert task.cancelled()
        assert not await registry.cancel_task("missing")

    @pytest.mark.asyncio
    async def test_shutdown_cancels_all(self):
        registry = TaskRegistry()
        tasks = [registry.register(f"t{i}", asyncio.sleep(10)) for i in range(3)]

        await registry.shutdown(timeout=1.0)

        assert all(t.cancelled() for t in tasks)
        assert registry.closed

    @pytest.mark.asyncio
    async def test_register_after_shutdown_refused(self):
        """Test late spawns cannot outlive the call."""
        registry = TaskRegistry()
        await registry.shutdown()

        with pytest.raises(RuntimeError):
            registry.register("reconnect", asyncio.sleep(10))
        assert registry.active_count == 0

    @pytest.mark.asyncio
    async def test_shutdown_skips_calling_task(self):
        """Test a registered task can shut the registry down without cancelling itself."""
        registry = TaskRegistry()
        other = registry.register("other", asyncio.sleep(10))

        async def stopper():
            await registry.shutdown(timeout=1.0)
            return "finished"

        task = registry.register("stopper", stopper())

        assert await task == "finished"
        assert other.cancelled()
