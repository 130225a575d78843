# ==============================================================================
# Periodic Tasks
# ==============================================================================
"""
Recurring asyncio work with explicit cancellation.

Every recurring timer the engine starts (idle tick, queue flush, profile
snapshot, cart poll, consent poll) is a PeriodicTask owned by the component
that started it, and is cancelled explicitly on teardown.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Union

logger = logging.getLogger(__name__)

TaskCallback = Callable[[], Union[None, Awaitable[None]]]


class PeriodicTask:
    """
    Run ``callback`` every ``interval_seconds`` until cancelled.

    Exceptions raised by the callback are logged and the schedule continues.
    ``max_runs`` bounds the number of invocations (None = unbounded); after
    the last run the task ends on its own.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        callback: TaskCallback,
        max_runs: int | None = None,
    ):
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self.name = name
        self.interval_seconds = interval_seconds
        self._callback = callback
        self._max_runs = max_runs
        self._task: asyncio.Task | None = None
        self._stopping = False
        self._in_callback = False
        self.runs = 0

    @property
    def running(self) -> bool:
        """True while the underlying task is scheduled."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the task on the running event loop."""
        if self.running:
            return
        self._stopping = False
        self._task = asyncio.get_running_loop().create_task(self._run(), name=self.name)
        logger.debug("Started periodic task %s (every %.2fs)", self.name, self.interval_seconds)

    def cancel(self) -> None:
        """Stop the schedule. Safe to call more than once."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.debug("Cancelled periodic task %s after %d runs", self.name, self.runs)
        self._task = None

    async def stop(self) -> None:
        """
        Stop the schedule, letting a callback already in progress finish.

        A task waiting for its next interval is cancelled outright.
        """
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        self._stopping = True
        if not self._in_callback:
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.debug("Stopped periodic task %s after %d runs", self.name, self.runs)

    async def _run(self) -> None:
        while not self._stopping and (self._max_runs is None or self.runs < self._max_runs):
            await asyncio.sleep(self.interval_seconds)
            self.runs += 1
            self._in_callback = True
            try:
                result = self._callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Periodic task %s failed: %s", self.name, e)
            finally:
                self._in_callback = False
