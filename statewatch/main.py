"""statewatch: timed boolean views over entity state streams.

This is the application entry point.  It wires the StateHub, the
WatchManager, and the HTTP / WebSocket endpoints together.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from statewatch.api.states import create_states_router
from statewatch.api.ws_watch import create_watch_router
from statewatch.config import Settings, settings
from statewatch.services.watch_manager import WatchManager
from statewatch.store.state_hub import StateHub

# ── Logging ──────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


# ── App factory ──────────────────────────────────────────────────────────────

def create_app(
    hub: StateHub | None = None,
    config: Settings | None = None,
) -> FastAPI:
    """Build the FastAPI app around a StateHub (a fresh one by default)."""
    hub = hub or StateHub()
    config = config or settings
    watch_manager = WatchManager()

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        watch_manager.close_all()

    app = FastAPI(
        title=config.app_name,
        description="Timed boolean views over entity state streams",
        version="0.1.0",
        debug=config.debug,
        lifespan=lifespan,
    )
    app.state.hub = hub
    app.state.watch_manager = watch_manager

    # ── Routes ───────────────────────────────────────────────────────────

    app.include_router(create_states_router(hub))
    app.include_router(create_watch_router(hub, watch_manager, config))

    # ── Health ───────────────────────────────────────────────────────────

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "entities": len(hub.entity_ids),
            "active_watches": watch_manager.active_count,
        }

    logger.info("%s ready", config.app_name)
    return app


app = create_app()
