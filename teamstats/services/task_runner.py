"""
Best-effort background tasks.

Work that must not hold up or roll back a request (invite emails and other
notifications) is submitted here instead of being awaited inline. Failures
are logged and never propagate to the caller.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """Tracks fire-and-forget tasks so they are not garbage collected mid-flight."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(
        self,
        func: Callable[..., Awaitable],
        *args,
        description: Optional[str] = None,
        **kwargs,
    ) -> asyncio.Task:
        """
        Schedule ``func(*args, **kwargs)`` on the running event loop.

        Args:
            func: Coroutine function to run
            description: Label used in log messages (defaults to the function name)

        Returns:
            The created task
        """
        label = description or getattr(func, "__name__", "background task")
        task = asyncio.create_task(self._run(label, func, *args, **kwargs))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, label: str, func: Callable[..., Awaitable], *args, **kwargs):
        try:
            result = await func(*args, **kwargs)
            logger.debug(f"Background task '{label}' finished")
            return result
        except asyncio.CancelledError:
            logger.warning(f"Background task '{label}' was cancelled")
            raise
        except Exception as e:
            logger.error(f"Background task '{label}' failed: {e}", exc_info=True)
            return None

    async def drain(self, timeout: float = 10.0) -> None:
        """Wait for outstanding tasks on shutdown; cancel whatever is still running after ``timeout``."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        logger.info(f"Waiting for {len(tasks)} background task(s) to finish...")
        done, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            logger.warning(f"Cancelled {len(still_running)} background task(s) at shutdown")


# Global runner instance
_task_runner: Optional[BackgroundTaskRunner] = None


def get_task_runner() -> BackgroundTaskRunner:
    """Get the global background task runner."""
    global _task_runner
    if _task_runner is None:
        _task_runner = BackgroundTaskRunner()
    return _task_runner
