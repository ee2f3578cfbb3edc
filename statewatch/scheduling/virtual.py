"""VirtualScheduler: a manually advanced timeline for deterministic tests.

Time only moves when ``advance_by`` / ``advance_to`` is called.  Due actions
run in deadline order (ties in scheduling order) and ``now()`` reads as each
action's own deadline while it runs, so an action that schedules a follow-up
sees a consistent clock.  Follow-ups that fall due inside the same advance
window are run in that same call.
"""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
from datetime import datetime, timedelta, timezone

from statewatch.scheduling.base import Action, ScheduledAction, Scheduler

logger = logging.getLogger(__name__)

_EPOCH = datetime(2000, 1, 1, tzinfo=timezone.utc)


class VirtualScheduler(Scheduler):
    """Scheduler whose clock is advanced explicitly by the caller.

    Args:
        start: Initial virtual time.  Naive datetimes are taken as UTC.
    """

    def __init__(self, start: datetime | None = None) -> None:
        start = start or _EPOCH
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)
        self._now = start
        self._lock = threading.RLock()
        self._queue: list[tuple[datetime, int, ScheduledAction]] = []
        self._sequence = itertools.count()

    def now(self) -> datetime:
        return self._now

    def schedule_after(self, delay: timedelta, action: Action) -> ScheduledAction:
        with self._lock:
            deadline = self._now + max(delay, timedelta(0))
            scheduled = ScheduledAction(deadline, action)
            heapq.heappush(self._queue, (deadline, next(self._sequence), scheduled))
            logger.debug("Virtual action scheduled for %s", deadline.isoformat())
            return scheduled

    @property
    def pending_count(self) -> int:
        """Number of scheduled actions that have neither run nor been cancelled."""
        with self._lock:
            return sum(1 for _, _, s in self._queue if s.is_pending)

    def advance_by(self, delta: timedelta) -> int:
        """Move the clock forward by *delta*, running everything that falls due.

        Returns the number of actions executed.
        """
        if delta < timedelta(0):
            raise ValueError("cannot advance a virtual clock backwards")
        return self.advance_to(self._now + delta)

    def advance_to(self, when: datetime) -> int:
        """Move the clock forward to *when*, running everything that falls due."""
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        if when < self._now:
            raise ValueError(
                f"cannot advance virtual clock backwards ({when.isoformat()} < {self._now.isoformat()})"
            )

        executed = 0
        while True:
            with self._lock:
                if not self._queue or self._queue[0][0] > when:
                    break
                deadline, _, scheduled = heapq.heappop(self._queue)
                self._now = max(self._now, deadline)
            if scheduled.run():
                executed += 1

        with self._lock:
            self._now = when
        return executed

    def run_all(self) -> int:
        """Advance to the last pending deadline, running every queued action."""
        executed = 0
        while True:
            with self._lock:
                live = [d for d, _, s in self._queue if s.is_pending]
                if not live:
                    self._queue.clear()
                    return executed
                target = max(live)
            executed += self.advance_to(max(target, self._now))
