"""
Fire-and-forget execution for best-effort side effects (confirmation emails).

Tasks are detached from the request that scheduled them: the HTTP response
never waits on them and their failures are only logged. References are kept
so the event loop does not garbage-collect a running task, and so shutdown
can drain whatever is still in flight.
"""
import asyncio
from typing import Awaitable, Set

import structlog

logger = structlog.get_logger(__name__)


class BackgroundTaskRunner:

    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable, name: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, name))
        return task

    def _on_done(self, task: asyncio.Task, name: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("background_task_cancelled", task=name)
            return
        exc = task.exception()
        if exc is not None:
            logger.error("background_task_failed", task=name, error=str(exc), exc_info=exc)

    async def drain(self) -> None:
        """Wait for every in-flight task. Used on shutdown and in tests."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
