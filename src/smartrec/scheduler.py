"""
Delayed-task scheduling on the asyncio event loop.

Reconnect timers, retry backoffs and queue cooldowns all go through one
Scheduler so they can be listed, cancelled and (in tests) fast-forwarded.

    scheduler = Scheduler()
    handle = scheduler.call_later(2000, reconnect, name="reconnect")
    handle.cancel()

Every delay is recorded in ``history`` as ``(name, delay_ms)``. The sleep
primitive is injectable: tests pass a coroutine that returns immediately and
assert on ``history`` instead of waiting.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]
Callback = Callable[[], object]


@dataclass(eq=False)
class ScheduledTask:
    """Handle for a callback waiting on a timer."""

    name: str
    delay_ms: float
    task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.task is None or self.task.done()

    @property
    def cancelled(self) -> bool:
        return self.task is not None and self.task.cancelled()

    def cancel(self) -> None:
        if self.task is not None and not self.task.done():
            self.task.cancel()


class Scheduler:
    """Runs callbacks after a delay and keeps track of what is pending."""

    def __init__(self, sleep: SleepFn | None = None) -> None:
        self._sleep = sleep or asyncio.sleep
        self._pending: set[ScheduledTask] = set()
        self.history: list[tuple[str, float]] = []

    async def sleep(self, delay_ms: float, name: str = "sleep") -> None:
        """Suspend the caller for ``delay_ms`` milliseconds."""
        self.history.append((name, delay_ms))
        await self._sleep(delay_ms / 1000)

    def call_later(self, delay_ms: float, callback: Callback, name: str = "timer") -> ScheduledTask:
        """Run ``callback`` (sync or async) after ``delay_ms`` milliseconds."""
        handle = ScheduledTask(name=name, delay_ms=delay_ms)
        self.history.append((name, delay_ms))
        handle.task = asyncio.create_task(self._run(handle, callback), name=name)
        self._pending.add(handle)
        handle.task.add_done_callback(lambda _t: self._pending.discard(handle))
        return handle

    def pending(self, name: str | None = None) -> list[ScheduledTask]:
        return [h for h in self._pending if not h.done and (name is None or h.name == name)]

    def cancel_all(self, name: str | None = None) -> int:
        handles = self.pending(name)
        for handle in handles:
            handle.cancel()
        return len(handles)

    async def drain(self) -> None:
        """Wait until every pending callback has run (or was cancelled)."""
        while self.pending():
            tasks = [h.task for h in self.pending() if h.task is not None]
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, handle: ScheduledTask, callback: Callback) -> None:
        await self._sleep(handle.delay_ms / 1000)
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Scheduled callback %s failed", handle.name)
