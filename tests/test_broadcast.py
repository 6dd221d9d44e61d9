"""
Tests for the SSE broadcast hub.
"""

import asyncio
import json

import pytest

from app.core.errors import CapacityExceeded
from app.services.broadcast import BroadcastHub, format_sse, stream_events

EVENTS = [{"model": 1, "datacenter": "GRA", "status": "available"}]


class TestRegistration:
    def test_capacity_ceiling(self):
        """The (max+1)-th register() fails; existing connections are untouched."""
        hub = BroadcastHub(max_connections=3)
        conns = [hub.register() for _ in range(3)]

        with pytest.raises(CapacityExceeded):
            hub.register()

        assert hub.active_connections == 3
        assert len({c.id for c in conns}) == 3

    def test_unregister_frees_slot(self):
        hub = BroadcastHub(max_connections=1)
        conn = hub.register()
        hub.unregister(conn)

        assert hub.register() is not None

    def test_unregister_twice_is_harmless(self):
        hub = BroadcastHub()
        conn = hub.register()
        hub.unregister(conn)
        hub.unregister(conn)

        assert hub.active_connections == 0

    def test_stats(self):
        hub = BroadcastHub(max_connections=4)
        hub.register()

        assert hub.stats() == {"active_connections": 1, "max_connections": 4, "usage_percent": 25.0}


class TestPublish:
    def test_fan_out_to_every_connection(self):
        hub = BroadcastHub()
        conns = [hub.register() for _ in range(3)]

        delivered = hub.publish(EVENTS)

        assert delivered == 3
        for conn in conns:
            message = conn.queue.get_nowait()
            assert message["event"] == "status-update"
            assert message["data"]["data"] == EVENTS
            assert conn.last_delivered_at is not None

    def test_empty_batch_is_not_sent(self):
        hub = BroadcastHub()
        conn = hub.register()

        assert hub.publish([]) == 0
        assert conn.queue.empty()

    def test_slow_consumer_is_dropped(self):
        """A full queue removes that connection; others still receive."""
        hub = BroadcastHub(queue_size=1)
        slow = hub.register()
        fast = hub.register()

        hub.publish(EVENTS)
        fast.queue.get_nowait()

        delivered = hub.publish(EVENTS)

        assert delivered == 1
        assert slow.closed is True
        assert hub.active_connections == 1
        assert fast.queue.get_nowait()["data"]["data"] == EVENTS

    def test_close_all(self):
        hub = BroadcastHub()
        conns = [hub.register() for _ in range(2)]

        assert hub.close_all() == 2
        assert hub.active_connections == 0
        assert all(c.queue.get_nowait() is None for c in conns)


class TestFormatting:
    def test_format_sse(self):
        frame = format_sse("status-update", {"a": 1}, event_id="42")
        assert frame == 'id: 42\nevent: status-update\ndata: {"a": 1}\n\n'

    def test_format_sse_multiline_string(self):
        assert format_sse("note", "one\ntwo") == "event: note\ndata: one\ndata: two\n\n"


class TestStreamEvents:
    @pytest.mark.asyncio
    async def test_stream_yields_initial_then_published(self):
        hub = BroadcastHub()
        conn = hub.register()
        stream = stream_events(hub, conn, initial=["event: connected\ndata: {}\n\n"], ping_interval=1.0)

        assert await stream.__anext__() == "event: connected\ndata: {}\n\n"

        hub.publish(EVENTS)
        frame = await stream.__anext__()
        assert frame.startswith("event: status-update\n")
        payload = json.loads(frame.split("data: ", 1)[1])
        assert payload["data"] == EVENTS

        hub.close_all()
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

    @pytest.mark.asyncio
    async def test_keepalive_when_idle(self):
        hub = BroadcastHub()
        conn = hub.register()
        stream = stream_events(hub, conn, ping_interval=0.01)

        assert await stream.__anext__() == ": keepalive\n\n"
        await stream.aclose()

        assert hub.active_connections == 0

    @pytest.mark.asyncio
    async def test_cancelled_stream_unregisters(self):
        """Client disconnect cancels the generator and frees the slot."""
        hub = BroadcastHub(max_connections=1)
        conn = hub.register()

        async def consume():
            async for _ in stream_events(hub, conn, ping_interval=10):
                pass

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert hub.active_connections == 0
