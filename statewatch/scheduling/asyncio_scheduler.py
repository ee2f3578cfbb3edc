"""AsyncioScheduler: wall-clock scheduling on an asyncio event loop.

Used by the web host: emissions fire on the loop thread, so WebSocket
handlers can hand them to an ``asyncio.Queue``.  Scheduling and cancelling
from a thread other than the loop's is allowed; the timer handle is then
armed or cancelled via ``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta

from statewatch.foundation.clock import utc_now
from statewatch.scheduling.base import Action, ScheduledAction, Scheduler

logger = logging.getLogger(__name__)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class AsyncioScheduler(Scheduler):
    """Runs actions via ``loop.call_later``.

    Args:
        loop: Event loop to schedule on.  Defaults to the loop running when
              the scheduler is created.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        loop = loop or _running_loop()
        if loop is None:
            raise RuntimeError("AsyncioScheduler needs an event loop")
        self._loop = loop

    def now(self) -> datetime:
        return utc_now()

    def schedule_after(self, delay: timedelta, action: Action) -> ScheduledAction:
        seconds = max(delay.total_seconds(), 0.0)
        scheduled = ScheduledAction(self.now() + timedelta(seconds=seconds), action)

        def _arm() -> None:
            if not scheduled.is_pending:
                return
            handle = self._loop.call_later(seconds, scheduled.run)
            scheduled.bind_canceller(lambda: self._cancel_handle(handle))

        if _running_loop() is self._loop:
            _arm()
        else:
            self._loop.call_soon_threadsafe(_arm)
        logger.debug("Loop action scheduled in %.3fs", seconds)
        return scheduled

    def _cancel_handle(self, handle: asyncio.TimerHandle) -> None:
        """Loop handles are not thread-safe; foreign threads go via the loop."""
        if _running_loop() is self._loop:
            handle.cancel()
        else:
            self._loop.call_soon_threadsafe(handle.cancel)
