"""
Supervision of detached background tasks.

Fire-and-forget work (background clones, exploration runs, snapshot
persistence) is spawned through a TaskSupervisor. The supervisor keeps a
strong reference to each task until it finishes and always attaches a
completion callback, so a failure in detached work is logged and reported
instead of vanishing.
"""

import asyncio
import logging
from typing import Callable, Coroutine, Optional, Set

from ..errors import format_error_concise

logger = logging.getLogger(__name__)

FailureHandler = Callable[[BaseException], None]


class TaskSupervisor:
    """Tracks detached tasks and reports their failures."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def spawn(
        self,
        coro: Coroutine,
        name: str,
        on_failure: Optional[FailureHandler] = None,
    ) -> asyncio.Task:
        """
        Start a coroutine as a detached task.

        Args:
            coro: Coroutine to run
            name: Task name used in log lines
            on_failure: Called with the exception if the task fails

        Returns:
            The created task
        """
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)

        def _done(t: asyncio.Task):
            self._tasks.discard(t)
            if t.cancelled():
                logger.debug(f"Background task {name} cancelled")
                return
            error = t.exception()
            if error is None:
                return
            logger.error(f"Background task {name} failed: {format_error_concise(error)}")
            if on_failure is not None:
                try:
                    on_failure(error)
                except Exception as handler_error:
                    logger.error(f"Failure handler for {name} raised: {handler_error}")

        task.add_done_callback(_done)
        return task

    @property
    def pending(self) -> int:
        """Number of tasks still running."""
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """
        Wait for outstanding tasks, cancelling whatever is left after timeout.

        Args:
            timeout: Seconds to wait before cancelling (None waits forever)
        """
        if not self._tasks:
            return
        tasks = list(self._tasks)
        logger.info(f"Draining {len(tasks)} background task(s)")
        done, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
