"""Fire-and-forget tasks that are drained on shutdown."""

import asyncio
from collections.abc import Coroutine
from itertools import count
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class BackgroundTasks:
    """Runs coroutines without awaiting them and keeps references until they finish.

    Used for broadcasts so a slow hub never delays the request that
    committed. The lifespan drains the set before the loop closes.

    Usage:
        bg = BackgroundTasks()
        bg.run(publisher.publish(event))
        await bg.wait(timeout=10)
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._ids = count(1)

    def run(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        name = f"bg:{getattr(coro, '__qualname__', 'task')}:{next(self._ids)}"
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Background task failed", task_name=task.get_name(), error=str(error))

    async def wait(self, *, timeout: float) -> None:
        """Wait for running tasks; cancel whatever is left after `timeout` seconds."""
        if not self._tasks:
            return

        _, still_running = await asyncio.wait(set(self._tasks), timeout=timeout)
        if still_running:
            logger.warning("Background tasks timed out, cancelling", timeout=timeout, pending=len(still_running))
            for task in still_running:
                task.cancel()
            await asyncio.gather(*still_running, return_exceptions=True)
