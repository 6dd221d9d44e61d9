"""
Broadcast Hub for Server-Sent Events.

Keeps the registry of open push connections, capped at max_connections.
Every published batch goes to every live connection (no per-subscriber
filtering). Each connection owns a bounded asyncio.Queue; publish uses
put_nowait, so a consumer that stops draining its queue is dropped instead
of stalling delivery to the others.

Must be used from the event loop that serves the SSE responses.
"""

import asyncio
import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Any, AsyncIterator, Dict, List, Optional

from app.core.errors import CapacityExceeded
from app.core.logging_config import get_logger
from app.core.typing import utc_now

logger = get_logger(__name__)

STATUS_UPDATE_EVENT = "status-update"


@dataclass
class PushConnection:
    """Handle returned by BroadcastHub.register()."""

    id: str
    queue: "asyncio.Queue[Optional[Dict[str, Any]]]"
    opened_at: datetime = field(default_factory=utc_now)
    last_delivered_at: Optional[datetime] = None
    closed: bool = False


class BroadcastHub:
    def __init__(self, max_connections: int = 1000, queue_size: int = 100):
        self.max_connections = max_connections
        self.queue_size = queue_size
        self._connections: Dict[str, PushConnection] = {}
        self._lock = Lock()

    @property
    def active_connections(self) -> int:
        with self._lock:
            return len(self._connections)

    def register(self) -> PushConnection:
        """Admit a new connection or raise CapacityExceeded."""
        with self._lock:
            if len(self._connections) >= self.max_connections:
                logger.warning("sse_capacity_reached", max_connections=self.max_connections)
                raise CapacityExceeded(f"Connection limit of {self.max_connections} reached")
            conn = PushConnection(id=uuid.uuid4().hex, queue=asyncio.Queue(maxsize=self.queue_size))
            self._connections[conn.id] = conn
            active = len(self._connections)
        logger.info("sse_connection_opened", connection_id=conn.id, active=active)
        return conn

    def unregister(self, conn: PushConnection) -> None:
        with self._lock:
            removed = self._connections.pop(conn.id, None)
            active = len(self._connections)
        conn.closed = True
        if removed is not None:
            logger.info("sse_connection_closed", connection_id=conn.id, active=active)

    def publish(self, events: List[Dict[str, Any]], event_type: str = STATUS_UPDATE_EVENT) -> int:
        """
        Fan the batch out to every live connection without blocking.

        Returns the number of connections the batch was queued for. Connections
        whose queue is full or that are already closed are removed.
        """
        if not events:
            return 0

        message = {
            "event": event_type,
            "data": {"type": event_type, "data": events, "timestamp": utc_now().isoformat()},
        }

        with self._lock:
            targets = list(self._connections.values())

        delivered = 0
        stale: List[PushConnection] = []
        for conn in targets:
            if conn.closed:
                stale.append(conn)
                continue
            try:
                conn.queue.put_nowait(message)
            except asyncio.QueueFull:
                stale.append(conn)
                continue
            conn.last_delivered_at = utc_now()
            delivered += 1

        for conn in stale:
            logger.warning("sse_connection_dropped", connection_id=conn.id, reason="slow or closed")
            self.unregister(conn)

        return delivered

    def close_all(self) -> int:
        """Signal every connection to end its stream. Used on shutdown."""
        with self._lock:
            targets = list(self._connections.values())
            self._connections.clear()

        for conn in targets:
            conn.closed = True
            try:
                conn.queue.put_nowait(None)
            except asyncio.QueueFull:
                pass
        if targets:
            logger.info("sse_connections_closed", count=len(targets))
        return len(targets)

    def stats(self) -> Dict[str, Any]:
        active = self.active_connections
        return {
            "active_connections": active,
            "max_connections": self.max_connections,
            "usage_percent": round(active / self.max_connections * 100, 1) if self.max_connections else 0.0,
        }


def format_sse(event: str, data: Any, event_id: Optional[str] = None) -> str:
    """Render one SSE frame."""
    lines = []
    if event_id:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event}")
    payload = data if isinstance(data, str) else json.dumps(data, default=str)
    for line in payload.splitlines() or [""]:
        lines.append(f"data: {line}")
    return "\n".join(lines) + "\n\n"


async def stream_events(
    hub: BroadcastHub,
    conn: PushConnection,
    initial: Optional[List[str]] = None,
    ping_interval: float = 15.0,
) -> AsyncIterator[str]:
    """
    Yield SSE frames for one connection until it is closed.

    Emits a keep-alive comment whenever nothing arrives for ping_interval.
    The connection is unregistered when the generator finishes, including
    when the client disconnects and the response cancels it.
    """
    try:
        for frame in initial or []:
            yield frame
        while not conn.closed or not conn.queue.empty():
            try:
                message = await asyncio.wait_for(conn.queue.get(), timeout=ping_interval)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            if message is None:
                break
            yield format_sse(message["event"], message["data"])
    finally:
        hub.unregister(conn)
