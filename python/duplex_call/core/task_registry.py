"""
Named background tasks of one call.

Each call session gets its own registry. Everything the call runs in the
background (connect, reconnect, recording, playback) is spawned through it,
so ending the call is one shutdown() away from leaving nothing behind.
"""

import asyncio
import logging
from typing import Any, Coroutine, Dict

logger = logging.getLogger("duplex.task_registry")


class TaskRegistry:
    """
    Spawn and track a call's tasks by name.

    Features:
    - One live task per name; re-registering a name supersedes the entry
    - Failures are logged and remembered by name
    - shutdown() cancels everything except the caller and closes the registry
    """

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}
        self._failures: Dict[str, BaseException] = {}
        self._finished = 0
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    @property
    def finished_count(self) -> int:
        """Tasks that completed, failed or were cancelled."""
        return self._finished

    @property
    def failures(self) -> Dict[str, BaseException]:
        """Last exception raised by each failed task name."""
        return dict(self._failures)

    def get_active_tasks(self) -> Dict[str, asyncio.Task]:
        return dict(self._tasks)

    def register(self, name: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        """
        Start `coro` as a task tracked under `name`.

        Raises:
            RuntimeError: if the registry was shut down
        """
        if self._closed:
            coro.close()
            raise RuntimeError(f"Cannot start '{name}': call tasks already shut down")

        task = asyncio.create_task(coro, name=name)
        self._tasks[name] = task
        task.add_done_callback(lambda t: self._on_done(name, t))
        logger.debug(f"Task started: {name}")
        return task

    def _on_done(self, name: str, task: asyncio.Task) -> None:
        if self._tasks.get(name) is task:
            del self._tasks[name]
        self._finished += 1

        if task.cancelled():
            logger.debug(f"Task '{name}' cancelled")
            return
        exc = task.exception()
        if exc is not None:
            self._failures[name] = exc
            logger.error(f"Task '{name}' failed: {exc}", exc_info=exc)

    async def cancel_task(self, name: str) -> bool:
        """
        Cancel one task and wait until it has unwound.

        Returns:
            False if no such task is running or it is the calling task
        """
        task = self._tasks.get(name)
        if task is None or task is asyncio.current_task():
            return False
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return True

    async def shutdown(self, timeout: float = 5.0) -> None:
        """
        Close the registry, cancel every task but the caller's, and wait up
        to `timeout` seconds for them to unwind.
        """
        self._closed = True
        current = asyncio.current_task()
        tasks = [t for t in self._tasks.values() if t is not current]
        if not tasks:
            return

        for task in tasks:
            task.cancel()
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            names = ", ".join(t.get_name() for t in pending)
            logger.warning(f"Tasks still running after {timeout}s: {names}")
        logger.debug(f"Cancelled {len(tasks)} call tasks ({len(self._failures)} had failed)")
