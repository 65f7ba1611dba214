"""Library utilities for bot sessions.

This package contains reusable, **parametric** abstractions configured
through function arguments. Nothing here knows about windows, menus or
the game protocol; domain code belongs in shopbot.bot.

Modules:
- retry: Retry decorator for connection setup
- scheduler: Named, cancellable delayed and repeating tasks
"""

from shopbot.lib.retry import with_retry
from shopbot.lib.scheduler import TaskCallback, TaskScheduler, TaskState

__all__ = [
    # Retry
    "with_retry",
    # Scheduler
    "TaskCallback",
    "TaskScheduler",
    "TaskState",
]
