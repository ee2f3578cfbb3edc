"""Pydantic models for the watch WebSocket: request parameters and frames."""

from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel, Field

from statewatch.domain.enums import WatchMode


class WatchRequest(BaseModel):
    """Validated query parameters of ``/ws/watch/{entity_id}``."""

    entity_id: str = Field(..., min_length=1, max_length=255)
    mode: WatchMode = WatchMode.TRUE_FOR
    seconds: float = Field(..., ge=0.0, description="Threshold duration in seconds")
    target: str = Field(..., min_length=1, max_length=255, description="State the default predicate matches")

    model_config = {"frozen": True}

    @property
    def threshold(self) -> timedelta:
        return timedelta(seconds=self.seconds)


class WatchFrame(BaseModel):
    """One derived boolean emission sent to a watch client."""

    entity_id: str
    mode: WatchMode
    value: bool
    at: datetime
