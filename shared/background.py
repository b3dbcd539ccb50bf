"""
Background task tracking for work that must outlive a request.

A request handler may return before its side effects are finished (for
example a tracking write issued after the response body is built). Such work
is handed to a ``BackgroundTaskRegistry`` which keeps a strong reference to
each task until it settles and lets the owning service await everything that
is still pending during shutdown.
"""

import asyncio
from typing import Any, Awaitable, Optional, Set

from shared.logging import get_logger


class BackgroundTaskRegistry:
    """Keeps deferred tasks alive and drains them on demand."""

    def __init__(self, name: str = "background"):
        self.name = name
        self.logger = get_logger(f"{name}.background_tasks")
        self._tasks: Set[asyncio.Task] = set()

    def wait_until(self, awaitable: Awaitable[Any], *, description: Optional[str] = None) -> asyncio.Task:
        """Schedule ``awaitable`` and retain it until it completes."""
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._tasks.discard(finished)
            if finished.cancelled():
                self.logger.warning("Background task cancelled", task=description)
                return
            error = finished.exception()
            if error is not None:
                self.logger.error("Background task failed", task=description, error=str(error))

        task.add_done_callback(_done)
        return task

    @property
    def pending(self) -> int:
        """Number of tasks that have not settled yet."""
        return len(self._tasks)

    async def drain(self) -> None:
        """Await every pending task; failures are logged, never raised."""
        while True:
            tasks = [task for task in self._tasks if not task.done()]
            if not tasks:
                return
            self.logger.info("Draining background tasks", count=len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)
