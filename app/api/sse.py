"""
Server-Sent Events endpoint for live status updates.

A client connects, receives a `connected` event and an `initial-status`
snapshot, then every `status-update` batch the poller publishes. Keep-alive
comments are sent while idle.
"""

import asyncio
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from app.api import deps
from app.api.status import group_by_model
from app.core.config import settings
from app.services.broadcast import BroadcastHub, format_sse, stream_events
from app.services.status_store import StatusStore

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.get("/status")
async def subscribe_status(
    hub: BroadcastHub = Depends(deps.get_hub),
    store: StatusStore = Depends(deps.get_status_store),
):
    # Raises CapacityExceeded at the ceiling; answered as 503 by the app handler
    conn = hub.register()

    now = datetime.now(timezone.utc).isoformat()
    try:
        snapshot = group_by_model(await asyncio.to_thread(store.get_all))
    except Exception:
        hub.unregister(conn)
        raise
    initial = [
        format_sse("connected", {"connection_id": conn.id, "timestamp": now}, event_id=conn.id),
        format_sse("initial-status", {"models": snapshot, "timestamp": now}),
    ]

    return StreamingResponse(
        stream_events(hub, conn, initial=initial, ping_interval=settings.SSE_PING_INTERVAL),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/stats")
def sse_stats(hub: BroadcastHub = Depends(deps.get_hub)):
    return {**hub.stats(), "timestamp": datetime.now(timezone.utc).isoformat()}
