"""REST endpoints for recording and reading entity state.

Paths:
    GET  /states
    GET  /states/{entity_id}
    PUT  /states/{entity_id}

A PUT records the new value in the StateHub, which pushes a Transition to
every watch on that entity.  No timing decisions are made here.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from statewatch.domain.state import StateSnapshot
from statewatch.models.state_update import StateUpdate
from statewatch.store.state_hub import StateHub

logger = logging.getLogger(__name__)


def create_states_router(hub: StateHub) -> APIRouter:
    """Factory that wires the state endpoints to a concrete StateHub."""

    router = APIRouter(prefix="/states", tags=["states"])

    @router.get("")
    async def list_states() -> dict[str, Any]:
        snapshots = hub.snapshots()
        return {
            "states": [s.model_dump(mode="json") for s in snapshots],
            "count": len(snapshots),
        }

    @router.get("/{entity_id}")
    async def get_state(entity_id: str) -> StateSnapshot:
        snapshot = hub.get_state(entity_id)
        if snapshot is None:
            raise HTTPException(status_code=404, detail=f"Entity {entity_id} not found")
        return snapshot

    @router.put("/{entity_id}")
    async def put_state(entity_id: str, update: StateUpdate) -> StateSnapshot:
        transition = hub.set_state(entity_id, update.value, update.last_changed)
        assert transition.new is not None
        logger.info("State of %s set to %r", entity_id, update.value)
        return transition.new

    return router
