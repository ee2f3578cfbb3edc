"""In-memory entity state hub: current snapshots plus per-entity change streams.

Design notes:
    - The hub is the state source the timed operators consume.  It answers
      "what is the entity's state right now" (``get_state``) and pushes a
      Transition on every change (``state_changes``).
    - Each entity has its own Subject, so subscribers never need to filter
      by entity id.
    - ``last_changed`` follows home-automation semantics: re-asserting the
      same value keeps the original timestamp unless one is given
      explicitly.  Only a new value (or an explicit timestamp) moves it.
    - A threading lock guards the snapshot map; transitions are pushed
      outside the lock so subscribers may read the hub re-entrantly.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable

from statewatch.domain.entity import Entity
from statewatch.domain.state import StateSnapshot, Transition
from statewatch.foundation.clock import utc_now
from statewatch.streams.observable import Subject

logger = logging.getLogger(__name__)


class StateHub:
    """Thread-safe, in-memory registry of entity states.

    Args:
        clock: Supplies the timestamp for changes recorded without one.
               Pass ``scheduler.now`` to keep the hub on virtual time.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or utc_now
        self._lock = threading.Lock()
        self._states: dict[str, StateSnapshot] = {}
        self._subjects: dict[str, Subject[Transition]] = {}

    # ── Public API ───────────────────────────────────────────────────────

    def set_state(
        self,
        entity_id: str,
        value: Any,
        last_changed: datetime | None = None,
    ) -> Transition:
        """Record a new state for *entity_id* and push the Transition.

        Returns the Transition that was emitted.
        """
        with self._lock:
            old = self._states.get(entity_id)
            if last_changed is None:
                unchanged = old is not None and old.value == value
                last_changed = old.last_changed if unchanged else self._clock()
            new = StateSnapshot(entity_id=entity_id, value=value, last_changed=last_changed)
            self._states[entity_id] = new
            subject = self._subject_for(entity_id)

        transition = Transition(entity_id=entity_id, old=old, new=new)
        logger.debug(
            "State %s: %s → %s (last_changed=%s)",
            entity_id,
            old.value if old else None,
            new.value,
            new.last_changed.isoformat(),
        )
        subject.on_next(transition)
        return transition

    def remove(self, entity_id: str) -> Transition | None:
        """Forget an entity, pushing a Transition whose ``new`` is None."""
        with self._lock:
            old = self._states.pop(entity_id, None)
            subject = self._subjects.get(entity_id)
        if old is None:
            return None
        transition = Transition(entity_id=entity_id, old=old, new=None)
        logger.info("Removed entity %s", entity_id)
        if subject is not None:
            subject.on_next(transition)
        return transition

    def get_state(self, entity_id: str) -> StateSnapshot | None:
        """Current snapshot of *entity_id*, or None if never set."""
        with self._lock:
            return self._states.get(entity_id)

    def state_changes(self, entity_id: str) -> Subject[Transition]:
        """Stream of Transitions for a single entity."""
        with self._lock:
            return self._subject_for(entity_id)

    def entity(self, entity_id: str) -> Entity:
        """Handle for *entity_id* bound to this hub."""
        return Entity(self, entity_id)

    @property
    def entity_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._states)

    def snapshots(self) -> list[StateSnapshot]:
        with self._lock:
            return [self._states[k] for k in sorted(self._states)]

    # ── Internals ────────────────────────────────────────────────────────

    def _subject_for(self, entity_id: str) -> Subject[Transition]:
        """Must be called while holding self._lock."""
        subject = self._subjects.get(entity_id)
        if subject is None:
            subject = Subject()
            self._subjects[entity_id] = subject
            logger.info("Registered entity stream %s", entity_id)
        return subject
