"""
Fixed-interval polling task with cancellation.

Wraps the usual ``while self._running: ...; await asyncio.sleep(n)``
loop in an asyncio Task so stopping cancels future ticks immediately
instead of waiting out the current sleep.

Usage:
    task = PeriodicTask(monitor.tick, interval=1.0, name="performance")
    task.start()            # needs a running event loop
    ...
    task.cancel()
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger("mindvault.polling")


class PeriodicTask:
    """Call ``callback`` every ``interval`` seconds until cancelled.

    The first tick runs immediately after ``start()``.  The callback may
    be a plain function or a coroutine function.  An exception raised by
    one tick is logged and the loop carries on with the next.

    Args:
        callback: Zero-argument callable run on every tick.
        interval: Seconds between ticks.
        name:     Label used in logs and as the asyncio task name.
    """

    def __init__(
        self,
        callback: Callable[[], Any | Awaitable[Any]],
        interval: float = 1.0,
        name: str = "periodic",
    ):
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._callback = callback
        self.interval = interval
        self.name = name
        self._task: asyncio.Task | None = None
        self.tick_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Schedule the loop on the running event loop (idempotent).

        Raises RuntimeError when called with no running loop.
        """
        if self.running:
            return self._task
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(), name=self.name)
        logger.info("Polling task '%s' started (every %ss)", self.name, self.interval)
        return self._task

    def cancel(self) -> None:
        """Cancel future ticks. Safe to call when not running."""
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
            logger.info("Polling task '%s' cancelled after %d tick(s)", self.name, self.tick_count)
        self._task = None

    async def _run(self) -> None:
        while True:
            try:
                result = self._callback()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error in polling task '%s'", self.name)
            self.tick_count += 1
            await asyncio.sleep(self.interval)
