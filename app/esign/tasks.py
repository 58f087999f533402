# app/esign/tasks.py

"""
Detached background work for the e-signature module.

Workflow advancement after /start and rescheduled artifact fetches run here,
outside any request/response lifecycle. Results are only logged. Pending
tasks are cancelled when the process shuts down.
"""

import asyncio
from typing import Any, Coroutine, Set

from app.utils.logger import get_logger

logger = get_logger(__name__)


class BackgroundTaskRunner:
    """Spawns fire-and-forget tasks on the running event loop and keeps them referenced."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str, **context) -> asyncio.Task:
        """Schedule `coro` without awaiting it"""
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, context))
        logger.debug("background_task_spawned", task=name, **context)
        return task

    def _on_done(self, task: asyncio.Task, context: dict) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("background_task_cancelled", task=task.get_name(), **context)
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "background_task_failed",
                task=task.get_name(),
                error=str(exc),
                exc_info=exc,
                **context,
            )

    async def wait_idle(self) -> None:
        """Wait until every task, including ones spawned meanwhile, has finished"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel whatever is still pending"""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("background_tasks_stopped", cancelled=len(tasks))
