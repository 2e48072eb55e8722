"""Cancellable timers and detached tasks owned by a session."""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Hashable


logger = logging.getLogger(__name__)


class ScheduledCallback:
    """Disposable handle around a loop timer."""

    def __init__(self, handle: asyncio.TimerHandle) -> None:
        self._handle = handle

    @property
    def cancelled(self) -> bool:
        return self._handle.cancelled()

    def cancel(self) -> None:
        self._handle.cancel()


class TimerRegistry:
    """Keyed timers; scheduling a key again replaces its previous timer."""

    def __init__(self) -> None:
        self._timers: dict[Hashable, ScheduledCallback] = {}

    def __len__(self) -> int:
        return len(self._timers)

    def __contains__(self, key: object) -> bool:
        return key in self._timers

    def schedule(self, key: Hashable, delay: float, callback: Callable[[], None]) -> ScheduledCallback:
        self.cancel(key)
        loop = asyncio.get_running_loop()

        def fire() -> None:
            self._timers.pop(key, None)
            callback()

        timer = ScheduledCallback(loop.call_later(delay, fire))
        self._timers[key] = timer
        return timer

    def cancel(self, key: Hashable) -> bool:
        timer = self._timers.pop(key, None)
        if timer is None:
            return False
        timer.cancel()
        return True

    def cancel_all(self) -> None:
        timers = list(self._timers.values())
        self._timers.clear()
        for timer in timers:
            timer.cancel()


def _log_task_failure(label: str) -> Callable[["asyncio.Future[Any]"], None]:
    def done(task: "asyncio.Future[Any]") -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("%s failed: %s", label, exc, exc_info=exc)

    return done


def run_detached(label: str, fn: Callable[..., Any], *args: Any) -> "asyncio.Future[Any] | None":
    """Call fn and, when it returns an awaitable, run it as a task whose failure is logged."""
    try:
        result = fn(*args)
    except Exception:
        logger.exception("%s failed", label)
        return None
    if not inspect.isawaitable(result):
        return None
    task = asyncio.ensure_future(result)
    task.add_done_callback(_log_task_failure(label))
    return task


async def maybe_await(result: Awaitable[Any] | Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result
