"""Live monitor stream.

Routes:
    GET /monitor/stream — text/event-stream of session events

Each event is one ``data: <json>`` frame. A ``: ping`` comment is sent
whenever no event arrived within the heartbeat interval, which keeps
proxies from closing the connection and lets us notice gone clients.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from picking_verifier.api.deps import get_app_settings, get_monitor_bus
from picking_verifier.config import Settings
from picking_verifier.logging_config import get_logger
from picking_verifier.services.monitor_bus import MonitorBus

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

router = APIRouter(prefix="/monitor", tags=["Monitor"])
logger = get_logger(__name__)


def format_frame(event: dict) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


async def event_frames(
    request: Request,
    bus: MonitorBus,
    heartbeat_seconds: float,
) -> AsyncIterator[str]:
    """Subscribe to ``bus`` and yield SSE frames until the client goes away.

    The subscription is taken on first iteration, so a response that is
    never streamed never registers a subscriber.
    """
    sub = bus.subscribe()
    try:
        while True:
            try:
                event = await asyncio.wait_for(sub.get(), timeout=heartbeat_seconds)
            except TimeoutError:
                if await request.is_disconnected():
                    break
                yield ": ping\n\n"
                continue
            yield format_frame(event.to_dict())
    finally:
        bus.unsubscribe(sub)


@router.get("/stream", summary="Subscribe to live session events")
async def stream(
    request: Request,
    bus: MonitorBus = Depends(get_monitor_bus),
    settings: Settings = Depends(get_app_settings),
) -> StreamingResponse:
    return StreamingResponse(
        event_frames(request, bus, settings.monitor_heartbeat_seconds),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
