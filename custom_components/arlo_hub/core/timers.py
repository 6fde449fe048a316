"""Named, cancelable timers sharing one event loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any

_LOGGER = logging.getLogger(__name__)

TimerCallback = Callable[[], Awaitable[Any] | Any]


class TimerSet:
    """Tracks background timers so they can be cleared as a group.

    Scheduling a name that is already active replaces the old timer, so a
    repeating chain never runs twice.
    """

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def __contains__(self, name: str) -> bool:
        task = self._tasks.get(name)
        return task is not None and not task.done()

    @property
    def names(self) -> list[str]:
        return [name for name in self._tasks if name in self]

    def call_later(self, name: str, delay: float, callback: TimerCallback) -> None:
        """Run ``callback`` once after ``delay`` seconds."""
        self._start(name, self._run_once(name, delay, callback))

    def call_repeating(
        self,
        name: str,
        interval: float,
        callback: TimerCallback,
        *,
        run_now: bool = False,
    ) -> None:
        """Run ``callback`` every ``interval`` seconds, measured from its end."""
        self._start(name, self._run_repeating(name, interval, callback, run_now))

    def cancel(self, name: str) -> None:
        task = self._tasks.pop(name, None)
        if task is not None and not task.done():
            _LOGGER.debug("Cancelling timer %s", name)
            task.cancel()

    def cancel_all(self) -> None:
        """Cancel every tracked timer."""
        for name in list(self._tasks):
            self.cancel(name)

    def _start(self, name: str, coro: Coroutine[Any, Any, None]) -> None:
        self.cancel(name)
        self._tasks[name] = asyncio.ensure_future(coro)

    async def _run_once(self, name: str, delay: float, callback: TimerCallback) -> None:
        await asyncio.sleep(delay)
        # Detach first so the callback may reschedule the same name.
        if self._tasks.get(name) is asyncio.current_task():
            del self._tasks[name]
        await self._invoke(name, callback)

    async def _run_repeating(
        self, name: str, interval: float, callback: TimerCallback, run_now: bool
    ) -> None:
        if run_now:
            await self._invoke(name, callback)
        while True:
            await asyncio.sleep(interval)
            await self._invoke(name, callback)

    @staticmethod
    async def _invoke(name: str, callback: TimerCallback) -> None:
        try:
            result = callback()
            if asyncio.iscoroutine(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:  # pylint: disable=broad-except
            _LOGGER.exception("Timer %s callback failed", name)
