"""Pydantic model for state changes pushed over HTTP."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class StateUpdate(BaseModel):
    """Body of ``PUT /states/{entity_id}``."""

    value: Any = Field(..., description="New state value, e.g. 'on' or 'off'")
    last_changed: Optional[datetime] = Field(
        default=None,
        description="When the value took effect; defaults to the time of receipt",
    )
