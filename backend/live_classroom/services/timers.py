"""Cancellable background tasks owned by a room."""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("live-classroom.timers")


class RoomTimer:
    """
    One scheduled background coroutine with cancel-on-stop semantics.

    Every start or cancel bumps ``generation``. A runner receives the generation
    it was started with and must check ``is_current`` (while holding the room
    lock) before acting, so a callback that already woke up when the timer was
    cancelled becomes a no-op.
    """

    def __init__(self, name: str):
        self.name = name
        self.generation = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def is_current(self, generation: int) -> bool:
        return generation == self.generation and self._task is not None

    def start(self, runner: Callable[[int], Awaitable[None]]) -> int:
        self.cancel()
        self.generation += 1
        generation = self.generation
        self._task = asyncio.create_task(runner(generation), name=f"{self.name}#{generation}")
        self._task.add_done_callback(self._report_failure)
        return generation

    def cancel(self) -> None:
        self.generation += 1
        task, self._task = self._task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _report_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Timer %s failed", task.get_name(), exc_info=exc)
