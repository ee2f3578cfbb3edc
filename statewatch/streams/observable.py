"""Push-based observable plumbing for state streams.

Just enough of the observer pattern for the timed operators: observers with
next/error/completed callbacks, disposable subscriptions, and a multicast
Subject.  No combinators live here.

Error semantics follow the usual stream contract: after ``on_error`` or
``on_completed`` an observer receives nothing further.  An observer created
without an error callback re-raises the error to whoever pushed it.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class Subscription:
    """Handle returned by ``subscribe``.  ``dispose()`` is idempotent."""

    __slots__ = ("_dispose", "_lock", "_disposed")

    def __init__(self, dispose: Callable[[], None] | None = None) -> None:
        self._dispose = dispose
        self._lock = threading.Lock()
        self._disposed = False

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            action, self._dispose = self._dispose, None
        if action is not None:
            action()

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info) -> None:
        self.dispose()


class Observer(Generic[T]):
    """Callback bundle receiving values from an Observable."""

    __slots__ = ("_on_next", "_on_error", "_on_completed", "_stopped")

    def __init__(
        self,
        on_next: Callable[[T], None] | None = None,
        on_error: Callable[[BaseException], None] | None = None,
        on_completed: Callable[[], None] | None = None,
    ) -> None:
        self._on_next = on_next
        self._on_error = on_error
        self._on_completed = on_completed
        self._stopped = False

    @property
    def is_stopped(self) -> bool:
        return self._stopped

    def on_next(self, value: T) -> None:
        if self._stopped:
            return
        if self._on_next is not None:
            self._on_next(value)

    def on_error(self, error: BaseException) -> None:
        if self._stopped:
            return
        self._stopped = True
        if self._on_error is None:
            raise error
        self._on_error(error)

    def on_completed(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        if self._on_completed is not None:
            self._on_completed()


class Observable(ABC, Generic[T]):
    """Something that pushes values of type T to subscribed observers."""

    def subscribe(
        self,
        on_next: Callable[[T], None] | Observer[T] | None = None,
        on_error: Callable[[BaseException], None] | None = None,
        on_completed: Callable[[], None] | None = None,
    ) -> Subscription:
        """Attach callbacks (or a ready-made Observer) and return the Subscription."""
        if isinstance(on_next, Observer):
            observer = on_next
        else:
            observer = Observer(on_next, on_error, on_completed)
        return self._subscribe_core(observer)

    @abstractmethod
    def _subscribe_core(self, observer: Observer[T]) -> Subscription:
        ...


class Subject(Observable[T]):
    """Multicast observable that is also the push side of a stream.

    Observers that subscribe after ``on_error`` / ``on_completed`` get the
    terminal notification immediately.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._observers: list[Observer[T]] = []
        self._error: Optional[BaseException] = None
        self._completed = False

    @property
    def observer_count(self) -> int:
        with self._lock:
            return len(self._observers)

    def on_next(self, value: T) -> None:
        with self._lock:
            if self._completed or self._error is not None:
                return
            observers = list(self._observers)
        for observer in observers:
            observer.on_next(value)

    def on_error(self, error: BaseException) -> None:
        with self._lock:
            if self._completed or self._error is not None:
                return
            self._error = error
            observers, self._observers = self._observers, []
        for observer in observers:
            observer.on_error(error)

    def on_completed(self) -> None:
        with self._lock:
            if self._completed or self._error is not None:
                return
            self._completed = True
            observers, self._observers = self._observers, []
        for observer in observers:
            observer.on_completed()

    def _subscribe_core(self, observer: Observer[T]) -> Subscription:
        with self._lock:
            error, completed = self._error, self._completed
            if error is None and not completed:
                self._observers.append(observer)
                return Subscription(lambda: self._remove(observer))
        if error is not None:
            observer.on_error(error)
        else:
            observer.on_completed()
        return Subscription()

    def _remove(self, observer: Observer[T]) -> None:
        with self._lock:
            try:
                self._observers.remove(observer)
            except ValueError:
                logger.debug("Observer already detached from subject")
