"""Named, cancellable timers for a single bot session.

Owns every delayed and repeating callback a session starts: reconnect
backoff, the position loop, anti-AFK nudges, menu-open retries, window
settle delays. Each task has a name; scheduling a name that is already
pending replaces it, and ``cancel_all()`` tears everything down at once.

Usage:
    from shopbot.lib.scheduler import TaskScheduler

    scheduler = TaskScheduler(owner="bot1")

    scheduler.call_later("reconnect", 5.0, supervisor.reconnect)
    scheduler.call_every("position", 0.05, session.send_position)

    scheduler.cancel("position")
    scheduler.cancel_all()

Callbacks may be plain functions or coroutine functions. They run on the
event loop, so they never race with event handlers, but the world may have
changed while they slept: callbacks must re-check liveness before acting.
Exceptions raised by a callback are logged and swallowed.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import TypedDict

logger = logging.getLogger(__name__)

TaskCallback = Callable[[], Awaitable[None] | None]
"""Callback run when a task fires. May return an awaitable."""


class TaskState(TypedDict):
    """State for a pending task."""

    name: str
    repeating: bool
    remaining_seconds: float


class _Entry:
    """Bookkeeping for a scheduled task."""

    __slots__ = ("task", "repeating", "fire_at")

    def __init__(self, task: asyncio.Task[None], repeating: bool, fire_at: float) -> None:
        self.task = task
        self.repeating = repeating
        self.fire_at = fire_at


class TaskScheduler:
    """Registry of named asyncio tasks owned by one session.

    All scheduling methods are non-blocking and must be called from
    inside a running event loop.

    Args:
        owner: Label used in log lines (usually the bot name).
    """

    def __init__(self, owner: str = "") -> None:
        self._owner = owner
        self._entries: dict[str, _Entry] = {}

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def call_later(self, name: str, delay: float, callback: TaskCallback) -> None:
        """Run ``callback`` once after ``delay`` seconds.

        The task is unregistered before the callback runs, so the callback
        may schedule the same name again.
        """
        self.cancel(name)
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._run_later(name, delay, callback))
        self._entries[name] = _Entry(task, repeating=False, fire_at=loop.time() + delay)

    def call_every(
        self,
        name: str,
        interval: float,
        callback: TaskCallback,
        *,
        initial_delay: float | None = None,
    ) -> None:
        """Run ``callback`` every ``interval`` seconds until cancelled."""
        self.cancel(name)
        loop = asyncio.get_running_loop()
        first = interval if initial_delay is None else initial_delay
        task = loop.create_task(self._run_every(name, interval, first, callback))
        self._entries[name] = _Entry(task, repeating=True, fire_at=loop.time() + first)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(self, name: str) -> bool:
        """Cancel the named task. Returns True if one was pending."""
        entry = self._entries.pop(name, None)
        if entry is None:
            return False
        if not entry.task.done():
            entry.task.cancel()
        return True

    def cancel_prefix(self, prefix: str) -> int:
        """Cancel every task whose name starts with ``prefix``."""
        names = [name for name in self._entries if name.startswith(prefix)]
        for name in names:
            self.cancel(name)
        return len(names)

    def cancel_all(self) -> int:
        """Cancel every pending task. Returns how many were cancelled."""
        names = list(self._entries)
        for name in names:
            self.cancel(name)
        if names:
            logger.debug("[%s] Cancelled %d task(s): %s", self._owner, len(names), ", ".join(names))
        return len(names)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def is_pending(self, name: str) -> bool:
        """Whether the named task is scheduled and not yet finished."""
        entry = self._entries.get(name)
        return entry is not None and not entry.task.done()

    @property
    def pending_names(self) -> list[str]:
        """Names of all pending tasks, sorted."""
        return sorted(name for name in self._entries if self.is_pending(name))

    def get_state(self) -> list[TaskState]:
        """Return remaining time for each pending task."""
        now = asyncio.get_running_loop().time()
        return [
            TaskState(
                name=name,
                repeating=entry.repeating,
                remaining_seconds=max(0.0, round(entry.fire_at - now, 3)),
            )
            for name, entry in sorted(self._entries.items())
            if not entry.task.done()
        ]

    # ------------------------------------------------------------------
    # Task bodies
    # ------------------------------------------------------------------

    async def _run_later(self, name: str, delay: float, callback: TaskCallback) -> None:
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return
        entry = self._entries.get(name)
        if entry is not None and entry.task is asyncio.current_task():
            del self._entries[name]
        await self._invoke(name, callback)

    async def _run_every(
        self, name: str, interval: float, first: float, callback: TaskCallback
    ) -> None:
        delay = first
        loop = asyncio.get_running_loop()
        try:
            while True:
                await asyncio.sleep(delay)
                delay = interval
                entry = self._entries.get(name)
                if entry is not None:
                    entry.fire_at = loop.time() + interval
                await self._invoke(name, callback)
        except asyncio.CancelledError:
            return

    async def _invoke(self, name: str, callback: TaskCallback) -> None:
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("[%s] Task %r failed", self._owner, name)
