from statewatch.scheduling.asyncio_scheduler import AsyncioScheduler
from statewatch.scheduling.base import ScheduledAction, Scheduler
from statewatch.scheduling.threaded import ThreadingScheduler
from statewatch.scheduling.virtual import VirtualScheduler

__all__ = [
    "AsyncioScheduler",
    "ScheduledAction",
    "Scheduler",
    "ThreadingScheduler",
    "VirtualScheduler",
]
