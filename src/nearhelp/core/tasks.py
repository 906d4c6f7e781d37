"""
Detached background tasks

Advisory side effects (live broadcasts, email alerts) are handed to a
BackgroundTaskRunner. The caller never awaits them; failures are logged
and dropped here.
"""

import asyncio
import logging
from typing import Awaitable, Optional, Set


class BackgroundTaskRunner:
    """Owns fire-and-forget tasks for the lifetime of the process"""

    def __init__(self, name: str = "background"):
        self.name = name
        self.running_tasks: Set[asyncio.Task] = set()
        self.logger = logging.getLogger(f"{__name__}.{name}")
        self.failures = 0
        self._shutdown = False

    def spawn(self, coro: Awaitable, name: Optional[str] = None) -> Optional[asyncio.Task]:
        """
        Schedule ``coro`` on the running loop without waiting for it.

        Returns the task, or None when the runner is shut down (the
        coroutine is closed so it never runs).
        """
        if self._shutdown:
            self.logger.debug(f"Runner {self.name} is stopped, dropping task {name}")
            if asyncio.iscoroutine(coro):
                coro.close()
            return None

        task = asyncio.get_running_loop().create_task(coro, name=name)
        self.running_tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task):
        self.running_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.failures += 1
            self.logger.warning(
                f"Background task {task.get_name()} failed: {error}",
                exc_info=(type(error), error, error.__traceback__)
            )

    async def drain(self, timeout: float = 5.0):
        """Wait for every task spawned so far, including tasks they spawn"""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while self.running_tasks:
            remaining = deadline - loop.time()
            if remaining <= 0:
                self.logger.warning(f"Runner {self.name} drain timed out with {len(self.running_tasks)} tasks")
                return
            await asyncio.wait(set(self.running_tasks), timeout=remaining)

    async def shutdown(self):
        """Cancel outstanding tasks and refuse new ones"""
        self._shutdown = True
        for task in list(self.running_tasks):
            task.cancel()
        if self.running_tasks:
            await asyncio.gather(*self.running_tasks, return_exceptions=True)
        self.logger.info(f"Runner {self.name} stopped")

    def restart(self):
        self._shutdown = False

    @property
    def pending(self) -> int:
        return len(self.running_tasks)
