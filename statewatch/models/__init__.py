from statewatch.models.state_update import StateUpdate
from statewatch.models.watch import WatchFrame, WatchRequest

__all__ = ["StateUpdate", "WatchFrame", "WatchRequest"]
