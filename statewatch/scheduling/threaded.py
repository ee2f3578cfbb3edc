"""ThreadingScheduler: wall-clock scheduling on ``threading.Timer`` threads.

For scripts without an event loop.  Actions run on the timer's daemon
thread; ScheduledAction's lock makes a cancel that races the timer either
win outright or become a no-op.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta

from statewatch.foundation.clock import utc_now
from statewatch.scheduling.base import Action, ScheduledAction, Scheduler

logger = logging.getLogger(__name__)


class ThreadingScheduler(Scheduler):
    """Scheduler backed by one daemon ``threading.Timer`` per action."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._timers: set[threading.Timer] = set()

    def now(self) -> datetime:
        return utc_now()

    def schedule_after(self, delay: timedelta, action: Action) -> ScheduledAction:
        seconds = max(delay.total_seconds(), 0.0)
        scheduled = ScheduledAction(self.now() + timedelta(seconds=seconds), action)

        def _fire() -> None:
            try:
                scheduled.run()
            finally:
                with self._lock:
                    self._timers.discard(timer)

        def _cancel() -> None:
            timer.cancel()
            with self._lock:
                self._timers.discard(timer)

        timer = threading.Timer(seconds, _fire)
        timer.daemon = True
        scheduled.bind_canceller(_cancel)
        with self._lock:
            self._timers.add(timer)
        timer.start()
        logger.debug("Timer thread scheduled in %.3fs", seconds)
        return scheduled

    @property
    def active_timers(self) -> int:
        with self._lock:
            return len(self._timers)

    def shutdown(self) -> None:
        """Cancel every outstanding timer thread."""
        with self._lock:
            timers, self._timers = self._timers, set()
        for timer in timers:
            timer.cancel()
        if timers:
            logger.info("Cancelled %d outstanding timer(s)", len(timers))
