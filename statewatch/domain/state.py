"""Entity state models: the contract between a state source and the operators.

A StateSnapshot records *what* an entity's value is and *when* that value
became current.  The ``last_changed`` timestamp is the moment the value took
effect, not the moment somebody observed it; the timed operators measure
elapsed time from it.

A Transition is one change event: the snapshot before and the snapshot after.
Both models are frozen so they can be shared freely between subscribers.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field, field_validator

from statewatch.domain.enums import BinaryState
from statewatch.foundation.clock import ensure_utc


# ── Snapshot ─────────────────────────────────────────────────────────────────

class StateSnapshot(BaseModel):
    """Immutable value + timestamp of an entity at a point in time."""

    entity_id: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Identifier of the entity, e.g. 'binary_sensor.door'",
    )
    value: Any = Field(..., description="The entity's state value (usually a string such as 'on')")
    last_changed: datetime = Field(..., description="When this value became current (UTC)")

    model_config = {"frozen": True}

    @field_validator("last_changed")
    @classmethod
    def last_changed_must_be_aware(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    def matches(self, target: BinaryState | str) -> bool:
        """True if the value equals *target*, ignoring case for strings."""
        expected = target.value if isinstance(target, BinaryState) else target
        if isinstance(self.value, str) and isinstance(expected, str):
            return self.value.lower() == expected.lower()
        return self.value == expected

    @property
    def is_on(self) -> bool:
        return self.matches(BinaryState.ON)

    @property
    def is_off(self) -> bool:
        return self.matches(BinaryState.OFF)


# ── Transition ───────────────────────────────────────────────────────────────

class Transition(BaseModel):
    """One change event on a monitored entity: previous and current snapshot.

    ``old`` is None for the first state ever recorded; ``new`` is None when
    the entity was removed.
    """

    entity_id: str = Field(..., min_length=1, max_length=255)
    old: Optional[StateSnapshot] = None
    new: Optional[StateSnapshot] = None

    model_config = {"frozen": True}


# ── Predicates ───────────────────────────────────────────────────────────────

StatePredicate = Callable[[StateSnapshot], bool]


def state_equals(target: BinaryState | str) -> StatePredicate:
    """Build the default predicate: snapshot value equals *target*."""

    def _predicate(snapshot: StateSnapshot) -> bool:
        return snapshot.matches(target)

    _predicate.__name__ = f"state_equals_{getattr(target, 'value', target)}"
    return _predicate
