"""Scheduler contract shared by the virtual, asyncio and thread bindings.

A scheduler supplies "now" and runs an action once a delay has elapsed.
Every scheduled action is represented by a ScheduledAction, which doubles as
its cancellation handle.

Architectural rules:
    1. ``cancel()`` is idempotent and a no-op once the action has run.
    2. An action runs at most once, even when a timer thread races a cancel.
    3. Schedulers never interpret the action's result or swallow its errors.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable

Action = Callable[[], None]


class ScheduledAction:
    """A pending action and its cancellation handle.

    Thread-safety note:
        ``cancel()`` and ``run()`` are serialized by an internal lock, so the
        first of the two to arrive decides the outcome.
    """

    __slots__ = ("deadline", "_action", "_on_cancel", "_lock", "_cancelled", "_fired")

    def __init__(
        self,
        deadline: datetime,
        action: Action,
        on_cancel: Callable[[], None] | None = None,
    ) -> None:
        self.deadline = deadline
        self._action = action
        self._on_cancel = on_cancel
        self._lock = threading.Lock()
        self._cancelled = False
        self._fired = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def is_pending(self) -> bool:
        return not (self._cancelled or self._fired)

    def bind_canceller(self, hook: Callable[[], None]) -> None:
        """Attach the underlying timer's cancel function."""
        with self._lock:
            self._on_cancel = hook

    def cancel(self) -> None:
        """Cancel the action.  Safe to call repeatedly or after it ran."""
        with self._lock:
            if self._cancelled or self._fired:
                return
            self._cancelled = True
            hook, self._on_cancel = self._on_cancel, None
        if hook is not None:
            hook()

    def run(self) -> bool:
        """Run the action unless it was cancelled or already ran.

        Returns True if the action was executed.
        """
        with self._lock:
            if self._cancelled or self._fired:
                return False
            self._fired = True
            self._on_cancel = None
        self._action()
        return True

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "fired" if self._fired else "pending"
        return f"ScheduledAction(deadline={self.deadline.isoformat()}, {state})"


class Scheduler(ABC):
    """Supplies the current time and runs actions after a delay."""

    @abstractmethod
    def now(self) -> datetime:
        """Current time as a UTC-aware datetime."""
        ...

    @abstractmethod
    def schedule_after(self, delay: timedelta, action: Action) -> ScheduledAction:
        """Run *action* once *delay* has elapsed and return its handle."""
        ...
