"""
Supervised fire-and-forget tasks.

Work that must not delay the client-visible response (cache writes) is
spawned here instead of being awaited inline. The set keeps a strong
reference to every task until it finishes, so the event loop cannot
garbage-collect it mid-flight, and ``drain`` lets application shutdown wait
for outstanding writes rather than dropping them.
"""

from __future__ import annotations

import asyncio
from typing import Any, Coroutine

from partners_gateway.logging_config import get_logger

logger = get_logger(__name__)


class BackgroundTasks:
    """Tracks detached tasks to completion."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()
        self.completed = 0
        self.failed = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:
        """Schedule ``coro`` without awaiting it. Must be called inside a running loop."""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Background task cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            self.failed += 1
            logger.error(
                "Background task failed",
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return
        self.completed += 1

    async def drain(self, timeout: float | None = 10.0) -> int:
        """Wait for outstanding tasks; returns how many were outstanding.

        Tasks that outlive ``timeout`` are cancelled.
        """
        if not self._tasks:
            return 0
        outstanding = list(self._tasks)
        logger.info("Draining background tasks", pending=len(outstanding))
        _, not_done = await asyncio.wait(outstanding, timeout=timeout)
        for task in not_done:
            task.cancel()
        if not_done:
            await asyncio.gather(*not_done, return_exceptions=True)
            logger.warning("Background tasks cancelled at shutdown", count=len(not_done))
        return len(outstanding)


__all__ = ["BackgroundTasks"]
