"""
Reconnect Policy.

Schedules at most one reconnect attempt at a time, a fixed interval after
a disconnect.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger("duplex.reconnect")


class ReconnectPolicy:
    """
    Fixed-interval, single-flight reconnect scheduling.

    Features:
    - One pending attempt at most; further schedule() calls are ignored
    - Optional cap on consecutive attempts (reset after a successful open)
    - Can be disabled entirely, making disconnects fatal to the caller
    """

    def __init__(
        self,
        interval: float = 5.0,
        enabled: bool = True,
        max_attempts: Optional[int] = None,
    ):
        """
        Args:
            interval: Seconds to wait before each reconnect attempt
            enabled: False to never reconnect
            max_attempts: Consecutive attempts allowed, None for unlimited
        """
        self.interval = interval
        self.enabled = enabled
        self.max_attempts = max_attempts

        self._task: Optional[asyncio.Task] = None
        self._attempts = 0
        self._scheduled_count = 0

    @property
    def pending(self) -> bool:
        """True while an attempt is waiting for its timer or running."""
        return self._task is not None and not self._task.done()

    @property
    def attempts(self) -> int:
        """Consecutive attempts since the last reset()."""
        return self._attempts

    @property
    def scheduled_count(self) -> int:
        """Total attempts scheduled over the policy's lifetime."""
        return self._scheduled_count

    @property
    def exhausted(self) -> bool:
        """True when no further attempt may be scheduled."""
        if not self.enabled:
            return True
        return self.max_attempts is not None and self._attempts >= self.max_attempts

    def reset(self) -> None:
        """Forget consecutive failures (call after a successful connect)."""
        self._attempts = 0

    def schedule(
        self,
        attempt: Callable[[], Awaitable[Any]],
        spawn: Optional[Callable[[Awaitable[Any]], asyncio.Task]] = None,
    ) -> bool:
        """
        Schedule one reconnect attempt after the interval.

        Args:
            attempt: Coroutine function performing the connect
            spawn: Task factory (defaults to asyncio.create_task)

        Returns:
            True if an attempt was scheduled, False if one is already pending
            or the policy is exhausted
        """
        current = asyncio.current_task()
        if self.pending and self._task is not current:
            logger.debug("Reconnect already pending, not scheduling another")
            return False
        if self.exhausted:
            return False

        self._attempts += 1
        self._scheduled_count += 1
        logger.info(
            f"Reconnecting in {self.interval:.1f}s (attempt {self._attempts})"
        )
        coro = self._run(attempt)
        self._task = spawn(coro) if spawn else asyncio.create_task(coro)
        return True

    async def _run(self, attempt: Callable[[], Awaitable[Any]]) -> None:
        await asyncio.sleep(self.interval)
        await attempt()

    def cancel(self) -> None:
        """Cancel a pending attempt, if any."""
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            logger.debug("Pending reconnect cancelled")
