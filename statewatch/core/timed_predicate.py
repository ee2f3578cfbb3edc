"""Timed predicate operators over an entity's state stream.

Two derived boolean streams, built from one state machine:

    when_true_for         emits True only once the predicate has held for at
                          least ``threshold``.
    limit_true_duration   emits True while the predicate holds, but demotes
                          to False once it has held for ``threshold``.

Elapsed time is measured from the entity's *last changed* timestamp, not
from subscription time, so a state that became true before anyone subscribed
counts towards the threshold:

    remaining = threshold - (now() - last_changed_at(current_state()))

    remaining <= 0   → emit the expiry value immediately
    remaining  > 0   → emit the opposite value now, schedule the expiry value

The expiry value is True for when_true_for and False for limit_true_duration;
that is the only difference between the two.

Rules:
    1. At most one PendingEmission per subscription.  Scheduling always
       cancels the previous one first.
    2. The timer is keyed off predicate-outcome flips.  A transition that
       leaves the predicate true does not touch the pending emission.
    3. Consecutive duplicate values are never emitted.
    4. Disposing the subscription cancels the pending emission; nothing is
       emitted afterwards.
    5. A raising predicate or accessor tears the subscription down and is
       delivered to the observer's on_error.
    6. The observer may react re-entrantly (change the entity, dispose).  The
       source is attached before the first evaluation and a timer is armed
       before the value preceding it is emitted, so such reactions are seen
       and can cancel it.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from statewatch.domain.enums import BinaryState
from statewatch.domain.state import StatePredicate, StateSnapshot, Transition, state_equals
from statewatch.scheduling.base import ScheduledAction, Scheduler
from statewatch.streams.observable import Observable, Observer, Subscription

logger = logging.getLogger(__name__)

CurrentStateAccessor = Callable[[], Optional[StateSnapshot]]
LastChangedAccessor = Callable[[StateSnapshot], datetime]
NowAccessor = Callable[[], datetime]


def _last_changed(snapshot: StateSnapshot) -> datetime:
    return snapshot.last_changed


@dataclass(frozen=True)
class PendingEmission:
    """A scheduled, cancellable future emission."""

    value: bool
    deadline: datetime
    handle: ScheduledAction

    def cancel(self) -> None:
        self.handle.cancel()


class TimedPredicateObservable(Observable[bool]):
    """Cold observable: every subscriber gets its own state machine and timer.

    Args:
        source: Transitions of the monitored entity (already filtered).
        current_state: Returns the entity's current snapshot.  Called fresh
            at every evaluation point.
        predicate: Condition over a snapshot.
        threshold: Minimum (true-for) or maximum (limit) truth duration.
        scheduler: Runs the delayed emission.
        expiry_value: Value emitted once the threshold has elapsed.
        now: Current time.  Defaults to ``scheduler.now``.
        last_changed_at: When the current value took effect.  Defaults to
            ``snapshot.last_changed``.
    """

    def __init__(
        self,
        source: Observable[Transition],
        current_state: CurrentStateAccessor,
        predicate: StatePredicate,
        threshold: timedelta,
        scheduler: Scheduler,
        expiry_value: bool,
        now: NowAccessor | None = None,
        last_changed_at: LastChangedAccessor | None = None,
        name: str = "timed_predicate",
    ) -> None:
        if not isinstance(threshold, timedelta):
            raise TypeError(f"threshold must be a timedelta, got {type(threshold).__name__}")
        if scheduler is None:
            raise TypeError("scheduler is required")

        self.threshold = threshold
        self.expiry_value = expiry_value
        self.name = name
        self._source = source
        self._current_state = current_state
        self._predicate = predicate
        self._scheduler = scheduler
        self._now = now or scheduler.now
        self._last_changed_at = last_changed_at or _last_changed

    def _subscribe_core(self, observer: Observer[bool]) -> Subscription:
        machine = _TimedPredicateMachine(self, observer)
        machine.start()
        return Subscription(machine.dispose)


class _TimedPredicateMachine:
    """Per-subscription state.

    Thread-safety note:
        Transitions and deadline callbacks may arrive on different threads
        (ThreadingScheduler).  Both go through ``self._lock``; a deadline
        callback only emits if its PendingEmission is still the live one.
    """

    def __init__(self, op: TimedPredicateObservable, observer: Observer[bool]) -> None:
        self._op = op
        self._observer = observer
        self._lock = threading.RLock()
        self._pending: PendingEmission | None = None
        self._last_emitted: bool | None = None
        self._holding: bool | None = None
        self._source_subscription: Subscription | None = None
        self._disposed = False

    # ── Lifecycle ────────────────────────────────────────────────────────

    def start(self) -> None:
        subscription = self._op._source.subscribe(
            self._on_transition, self._on_source_error, self._on_source_completed
        )
        with self._lock:
            if self._disposed:
                # The source terminated while we were attaching.
                subscription.dispose()
                return
            self._source_subscription = subscription
            self._evaluate(self._op._current_state())

    def dispose(self) -> None:
        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            self._cancel_pending()
            subscription, self._source_subscription = self._source_subscription, None
        if subscription is not None:
            subscription.dispose()
        logger.debug("%s subscription disposed", self._op.name)

    # ── Source callbacks ─────────────────────────────────────────────────

    def _on_transition(self, transition: Transition) -> None:
        with self._lock:
            if self._disposed:
                return
            self._evaluate(transition.new, from_transition=True)

    def _on_source_error(self, error: BaseException) -> None:
        self._fail(error)

    def _on_source_completed(self) -> None:
        with self._lock:
            if self._disposed:
                return
        self.dispose()
        self._observer.on_completed()

    # ── State machine ────────────────────────────────────────────────────

    def _evaluate(self, snapshot: StateSnapshot | None, from_transition: bool = False) -> None:
        """Must be called while holding self._lock."""
        op = self._op
        remaining: timedelta | None = None
        try:
            holds = snapshot is not None and bool(op._predicate(snapshot))
            if holds and not (from_transition and self._holding):
                # The transition's snapshot is what changed; the accessor may
                # carry a fresher view of the same entity.
                current = op._current_state() or snapshot
                remaining = op.threshold - (op._now() - op._last_changed_at(current))
        except Exception as exc:
            logger.warning("%s evaluation failed: %s", op.name, exc)
            self._fail(exc)
            return

        if not holds:
            self._holding = False
            self._cancel_pending()
            self._emit(False)
            return
        if remaining is None:
            return
        self._holding = True

        if remaining <= timedelta(0):
            self._cancel_pending()
            self._emit(op.expiry_value)
        else:
            # Armed first: the observer may flip the entity or dispose from
            # inside on_next, and that must find the timer to cancel.
            self._schedule(remaining)
            self._emit(not op.expiry_value)

    def _schedule(self, remaining: timedelta) -> None:
        """Must be called while holding self._lock."""
        self._cancel_pending()
        if self._disposed:
            return
        op = self._op
        pending: list[PendingEmission] = []

        def _fire() -> None:
            self._on_deadline(pending[0])

        handle = op._scheduler.schedule_after(remaining, _fire)
        emission = PendingEmission(op.expiry_value, handle.deadline, handle)
        pending.append(emission)
        self._pending = emission
        logger.debug(
            "%s scheduled %s in %s (deadline %s)",
            op.name,
            op.expiry_value,
            remaining,
            handle.deadline.isoformat(),
        )

    def _on_deadline(self, emission: PendingEmission) -> None:
        with self._lock:
            if self._disposed or self._pending is not emission:
                return
            self._pending = None
            self._emit(emission.value)

    def _cancel_pending(self) -> None:
        """Must be called while holding self._lock."""
        pending, self._pending = self._pending, None
        if pending is not None:
            pending.cancel()
            logger.debug("%s cancelled pending %s", self._op.name, pending.value)

    def _emit(self, value: bool) -> None:
        """Must be called while holding self._lock."""
        if self._disposed or self._last_emitted is value:
            return
        self._last_emitted = value
        logger.debug("%s → %s", self._op.name, value)
        self._observer.on_next(value)

    def _fail(self, error: BaseException) -> None:
        with self._lock:
            if self._disposed:
                return
        self.dispose()
        self._observer.on_error(error)


# ── Public operators ─────────────────────────────────────────────────────────

def when_true_for(
    source: Observable[Transition],
    current_state: CurrentStateAccessor,
    threshold: timedelta,
    scheduler: Scheduler,
    predicate: StatePredicate | None = None,
    target: BinaryState | str = BinaryState.ON,
    now: NowAccessor | None = None,
    last_changed_at: LastChangedAccessor | None = None,
) -> TimedPredicateObservable:
    """True once the predicate has held for at least *threshold*.

    Without a *predicate*, the condition is "value equals *target*".
    """
    return TimedPredicateObservable(
        source,
        current_state,
        predicate or state_equals(target),
        threshold,
        scheduler,
        expiry_value=True,
        now=now,
        last_changed_at=last_changed_at,
        name="when_true_for",
    )


def limit_true_duration(
    source: Observable[Transition],
    current_state: CurrentStateAccessor,
    threshold: timedelta,
    scheduler: Scheduler,
    predicate: StatePredicate | None = None,
    target: BinaryState | str = BinaryState.ON,
    now: NowAccessor | None = None,
    last_changed_at: LastChangedAccessor | None = None,
) -> TimedPredicateObservable:
    """True while the predicate holds, but for no longer than *threshold*.

    Without a *predicate*, the condition is "value equals *target*".
    """
    return TimedPredicateObservable(
        source,
        current_state,
        predicate or state_equals(target),
        threshold,
        scheduler,
        expiry_value=False,
        now=now,
        last_changed_at=last_changed_at,
        name="limit_true_duration",
    )
