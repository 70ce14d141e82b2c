"""Detached background tasks for non-critical side effects.

Used for work the request must not wait on (token accounting, cache
write-through). Failures are logged and dropped; nothing is retried.
"""

import asyncio
import logging
from typing import Any, Awaitable, Set

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """Holds strong references to detached tasks until they finish."""

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Awaitable[Any], name: str) -> asyncio.Task:
        """Schedule ``coro`` without awaiting it. Must be called inside a running loop."""
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.debug("Background task %s cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.warning(
                "Background task %s failed: %s",
                task.get_name(),
                exc,
                exc_info=exc,
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait for outstanding tasks, e.g. during graceful shutdown."""
        if not self._tasks:
            return
        done, still_pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if still_pending:
            logger.warning(
                "Shutdown proceeding with %d background tasks still running",
                len(still_pending),
            )
