"""Tracks open watch subscriptions so they can be counted and torn down."""

from __future__ import annotations

import logging
import threading

from statewatch.streams.observable import Subscription

logger = logging.getLogger(__name__)


class WatchManager:
    """Registry of live watch subscriptions keyed by an opaque watch id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._watches: dict[int, Subscription] = {}
        self._next_id = 0

    def open(self, subscription: Subscription) -> int:
        with self._lock:
            self._next_id += 1
            watch_id = self._next_id
            self._watches[watch_id] = subscription
        return watch_id

    def close(self, watch_id: int) -> None:
        with self._lock:
            subscription = self._watches.pop(watch_id, None)
        if subscription is not None:
            subscription.dispose()

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._watches)

    def close_all(self) -> int:
        """Dispose every live watch.  Returns how many were closed."""
        with self._lock:
            watches, self._watches = self._watches, {}
        for subscription in watches.values():
            subscription.dispose()
        if watches:
            logger.info("Closed %d watch subscription(s)", len(watches))
        return len(watches)
