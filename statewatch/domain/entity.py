"""Entity: a named handle onto one entity in a state hub.

The handle reads the hub fresh on every access, so ``entity.state`` always
reflects the latest recorded snapshot.  The timed operators are exposed as
methods that wire the hub's per-entity stream and current-state lookup in
for the caller.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from statewatch.core.timed_predicate import (
    LastChangedAccessor,
    NowAccessor,
    TimedPredicateObservable,
    limit_true_duration,
    when_true_for,
)
from statewatch.domain.enums import BinaryState
from statewatch.domain.state import StatePredicate, StateSnapshot, Transition
from statewatch.scheduling.base import Scheduler
from statewatch.streams.observable import Observable

if TYPE_CHECKING:
    from statewatch.store.state_hub import StateHub


class Entity:
    """Handle for a single entity id within a StateHub."""

    __slots__ = ("entity_id", "_hub")

    def __init__(self, hub: StateHub, entity_id: str) -> None:
        self.entity_id = entity_id
        self._hub = hub

    @property
    def state(self) -> StateSnapshot | None:
        return self._hub.get_state(self.entity_id)

    @property
    def is_on(self) -> bool:
        snapshot = self.state
        return snapshot is not None and snapshot.is_on

    @property
    def is_off(self) -> bool:
        snapshot = self.state
        return snapshot is not None and snapshot.is_off

    def state_changes(self) -> Observable[Transition]:
        return self._hub.state_changes(self.entity_id)

    def when_true_for(
        self,
        threshold: timedelta,
        scheduler: Scheduler,
        predicate: StatePredicate | None = None,
        target: BinaryState | str = BinaryState.ON,
        now: NowAccessor | None = None,
        last_changed_at: LastChangedAccessor | None = None,
    ) -> TimedPredicateObservable:
        """True once this entity has satisfied *predicate* for *threshold*."""
        return when_true_for(
            self.state_changes(),
            lambda: self.state,
            threshold,
            scheduler,
            predicate=predicate,
            target=target,
            now=now,
            last_changed_at=last_changed_at,
        )

    def limit_true_duration(
        self,
        threshold: timedelta,
        scheduler: Scheduler,
        predicate: StatePredicate | None = None,
        target: BinaryState | str = BinaryState.ON,
        now: NowAccessor | None = None,
        last_changed_at: LastChangedAccessor | None = None,
    ) -> TimedPredicateObservable:
        """True while this entity satisfies *predicate*, capped at *threshold*."""
        return limit_true_duration(
            self.state_changes(),
            lambda: self.state,
            threshold,
            scheduler,
            predicate=predicate,
            target=target,
            now=now,
            last_changed_at=last_changed_at,
        )

    def __repr__(self) -> str:
        snapshot = self.state
        value = snapshot.value if snapshot else None
        return f"Entity(id={self.entity_id}, state={value!r})"
