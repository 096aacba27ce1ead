"""Supervised background tasks for work that must outlive the request.

Log appends and `last_used_at` touches run here so the client gets its
response first. Every task is strongly referenced until it finishes, its
failure is reported, and shutdown drains whatever is still pending.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackgroundTaskSupervisor:
    """Owns fire-and-forget coroutines so they run to completion."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self.completed = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        """Number of tasks that have not finished yet."""
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, T], *, name: str | None = None) -> asyncio.Task[T]:
        """Schedule `coro` on the running loop and keep it alive until done."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            self.failed += 1
            logger.warning("Background task %s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            self.failed += 1
            logger.error(
                "Background task %s failed: %s", task.get_name(), exc, exc_info=exc
            )
            return
        self.completed += 1

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for every pending task, including ones spawned while draining.

        Args:
            timeout: Upper bound in seconds; None waits indefinitely

        Returns:
            True if nothing is left pending
        """
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        while self._tasks:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                break
            await asyncio.wait(list(self._tasks), timeout=remaining)

        if self._tasks:
            logger.warning(
                "Background drain timed out with %d task(s) still pending", len(self._tasks)
            )
            return False
        return True
