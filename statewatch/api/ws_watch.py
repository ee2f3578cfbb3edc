"""WebSocket endpoint streaming a timed boolean view of one entity.

Path: /ws/watch/{entity_id}?mode=true_for|limit_true&seconds=<float>&target=<state>

On connect the chosen operator is subscribed against the StateHub with an
AsyncioScheduler bound to the serving loop.  Every emission is sent as a
WatchFrame.  The subscription is disposed when the client disconnects, so
no timer outlives its socket.

Invalid parameters are answered with a single error frame and the socket is
closed with code 1008 (policy violation).  If the operator fails after it is
running, the client gets an error frame and the socket is closed with code
1011 (internal error).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from statewatch.config import Settings
from statewatch.domain.enums import WatchMode
from statewatch.models.watch import WatchFrame, WatchRequest
from statewatch.scheduling.asyncio_scheduler import AsyncioScheduler
from statewatch.services.watch_manager import WatchManager
from statewatch.store.state_hub import StateHub

logger = logging.getLogger(__name__)


def create_watch_router(
    hub: StateHub,
    watch_manager: WatchManager,
    config: Settings,
) -> APIRouter:
    """Factory that wires the watch endpoint to a hub and watch manager.

    Args:
        hub: Source of entity state and transitions.
        watch_manager: Registry the open subscriptions are tracked in.
        config: Supplies default target/threshold and the threshold cap.
    """

    router = APIRouter()

    @router.websocket("/ws/watch/{entity_id}")
    async def watch_entity(
        websocket: WebSocket,
        entity_id: str,
        mode: str = WatchMode.TRUE_FOR.value,
        seconds: str | None = None,
        target: str | None = None,
    ) -> None:
        await websocket.accept()

        # ── Validate at the boundary ─────────────────────────────────────
        try:
            request = WatchRequest(
                entity_id=entity_id,
                mode=mode,
                seconds=seconds if seconds is not None else config.default_threshold_seconds,
                target=target or config.default_target_state,
            )
            if request.seconds > config.max_threshold_seconds:
                raise ValueError(
                    f"seconds must not exceed {config.max_threshold_seconds:g}"
                )
        except (ValidationError, ValueError) as exc:
            await websocket.send_json({"status": "error", "detail": str(exc)})
            await websocket.close(code=1008)
            return

        # ── Subscribe ────────────────────────────────────────────────────
        loop = asyncio.get_running_loop()
        scheduler = AsyncioScheduler(loop)
        # None tells the sender to close the socket.
        queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()

        def _push(payload: dict[str, Any] | None) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, payload)

        def _on_next(value: bool) -> None:
            frame = WatchFrame(
                entity_id=request.entity_id,
                mode=request.mode,
                value=value,
                at=scheduler.now(),
            )
            _push(frame.model_dump(mode="json"))

        def _on_error(error: BaseException) -> None:
            logger.warning("Watch on %s failed: %s", request.entity_id, error)
            _push({"status": "error", "detail": str(error)})
            _push(None)

        entity = hub.entity(request.entity_id)
        if request.mode == WatchMode.TRUE_FOR:
            observable = entity.when_true_for(request.threshold, scheduler, target=request.target)
        else:
            observable = entity.limit_true_duration(request.threshold, scheduler, target=request.target)

        watch_id = watch_manager.open(observable.subscribe(_on_next, _on_error))
        logger.info(
            "Watch %d opened on %s (%s, %.3fs), total: %d",
            watch_id,
            request.entity_id,
            request.mode.value,
            request.seconds,
            watch_manager.active_count,
        )

        # ── Pump frames until the client goes away ───────────────────────
        async def _send_frames() -> None:
            while True:
                payload = await queue.get()
                if payload is None:
                    await websocket.close(code=1011)
                    return
                await websocket.send_json(payload)

        async def _await_disconnect() -> None:
            try:
                while True:
                    await websocket.receive_text()
            except WebSocketDisconnect:
                return

        sender = asyncio.create_task(_send_frames(), name=f"watch-{watch_id}-sender")
        receiver = asyncio.create_task(_await_disconnect(), name=f"watch-{watch_id}-receiver")
        try:
            done, _ = await asyncio.wait(
                {sender, receiver}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in done:
                if task is sender and task.exception() is not None:
                    logger.info("Watch %d send failed: %s", watch_id, task.exception())
        finally:
            watch_manager.close(watch_id)
            sender.cancel()
            receiver.cancel()
            await asyncio.gather(sender, receiver, return_exceptions=True)
            logger.info(
                "Watch %d closed, total: %d", watch_id, watch_manager.active_count
            )

    return router
