"""Share one in-flight coroutine among concurrent awaiters."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class SingleFlight(Generic[T]):
    """Run at most one instance of an async operation at a time.

    Callers arriving while the operation is running await the same task and
    observe the same result or exception. Once it finishes the slot is
    released, so a failed operation can be retried by the next caller.
    """

    def __init__(self) -> None:
        self._task: Optional[asyncio.Task[T]] = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run(self, factory: Callable[[], Awaitable[T]]) -> T:
        loop = asyncio.get_running_loop()
        task = self._task
        # A task left over from another (closed) event loop can't be awaited here
        if task is None or task.done() or task.get_loop() is not loop:
            task = loop.create_task(self._wrap(factory))
            self._task = task
            task.add_done_callback(self._release)
        # Shielded so one cancelled waiter doesn't cancel the work for the rest
        return await asyncio.shield(task)

    @staticmethod
    async def _wrap(factory: Callable[[], Awaitable[T]]) -> T:
        return await factory()

    def _release(self, task: "asyncio.Task[T]") -> None:
        if self._task is task:
            self._task = None
        if not task.cancelled():
            # Mark the exception retrieved; waiters re-raise it themselves
            task.exception()

    def reset(self) -> None:
        self._task = None
