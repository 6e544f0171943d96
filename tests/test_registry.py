"""Tests for relay/registry.py: connection state machine, registry, handshake."""

import asyncio

import pytest

from overlay_relay.relay import Connection, ConnectionRegistry, ConnectionState
from overlay_relay.relay.registry import ConnectionNotOpen

from conftest import FakeTransport, drain


class TestConnectionStateMachine:
    def test_starts_connecting(self):
        conn = Connection(FakeTransport())
        assert conn.state is ConnectionState.CONNECTING
        assert not conn.is_open

    def test_open_close_cycle(self):
        conn = Connection(FakeTransport())
        conn.open()
        assert conn.is_open
        conn.begin_close()
        assert conn.state is ConnectionState.CLOSING
        conn.mark_closed()
        assert conn.state is ConnectionState.CLOSED

    def test_cannot_reopen(self):
        conn = Connection(FakeTransport())
        conn.open()
        conn.mark_closed()
        with pytest.raises(ConnectionNotOpen):
            conn.open()

    def test_deliver_requires_open(self):
        conn = Connection(FakeTransport())
        with pytest.raises(ConnectionNotOpen):
            conn.deliver("{}")

    @pytest.mark.asyncio
    async def test_pump_sends_in_order(self):
        transport = FakeTransport()
        conn = Connection(transport)
        conn.open()
        task = asyncio.create_task(conn.pump())
        conn.deliver("1")
        conn.deliver("2")
        for _ in range(5):
            await asyncio.sleep(0)
        conn.mark_closed()
        await task
        assert transport.sent == ["1", "2"]

    @pytest.mark.asyncio
    async def test_pump_drops_backlog_after_close(self):
        transport = FakeTransport()
        conn = Connection(transport)
        conn.open()
        conn.deliver("late")
        conn.mark_closed()
        await conn.pump()
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_pump_failure_closes_connection(self):
        conn = Connection(FakeTransport(fail=True))
        conn.open()
        conn.deliver("x")
        await conn.pump()
        assert conn.state is ConnectionState.CLOSED

    def test_full_outbox_closes_connection(self):
        conn = Connection(FakeTransport(), outbox_limit=2)
        conn.open()
        conn.deliver("1")
        conn.deliver("2")
        with pytest.raises(ConnectionNotOpen):
            conn.deliver("3")
        assert conn.state is ConnectionState.CLOSED
        assert conn.outbox.qsize() == 2

    @pytest.mark.asyncio
    async def test_stalled_client_dropped_from_fanout(self, context):
        stalled = FakeTransport()
        slow = Connection(stalled, connection_id="slow", outbox_limit=3)
        fast = Connection(FakeTransport(), connection_id="fast")
        context.handshake(slow)
        context.handshake(fast)
        for n in range(5):
            context.router.apply_content({"n": n})
        assert slow.state is ConnectionState.CLOSED
        assert slow not in context.registry
        assert len(drain(fast)) == 6
        # 남은 backlog 는 전송하지 않고 pump 종료
        await slow.pump()
        assert stalled.sent == []


class TestRegistry:
    def test_register_and_unregister(self):
        registry = ConnectionRegistry()
        a, b = Connection(FakeTransport()), Connection(FakeTransport())
        registry.register(a)
        registry.register(b)
        assert len(registry) == 2
        assert a in registry
        assert registry.unregister(a) is True
        assert registry.unregister(a) is False
        assert a not in registry

    def test_for_each_tolerates_removal_during_iteration(self):
        registry = ConnectionRegistry()
        conns = [Connection(FakeTransport()) for _ in range(3)]
        for c in conns:
            registry.register(c)
        seen = []

        def visit(c):
            seen.append(c)
            registry.unregister(c)

        registry.for_each(visit)
        assert seen == conns
        assert len(registry) == 0


class TestHandshake:
    def test_initial_snapshot_is_first_and_only(self, context):
        context.store.set("content", {"titre": "Live"})
        context.store.set("alerts", [{"id": "a1", "status": "new"}])
        conn = Connection(FakeTransport())
        context.handshake(conn)
        messages = drain(conn)
        assert len(messages) == 1
        initial = messages[0]
        assert initial["type"] == "initial"
        assert initial["data"] == {"titre": "Live"}
        assert initial["slots"]["alerts"] == [{"id": "a1", "status": "new"}]
        assert set(initial["slots"]) >= {"content", "settings", "alerts", "studio2027", "dev_dashboard"}

    def test_snapshot_precedes_broadcasts(self, context, connect):
        other = connect("other")
        conn = Connection(FakeTransport())
        context.handshake(conn)
        context.router.apply_content({"titre": "X"}, origin=other)
        kinds = [m["type"] for m in drain(conn)]
        assert kinds == ["initial", "update"]

    def test_handshake_does_not_touch_history(self, context, connect):
        connect()
        connect()
        assert context.store.list_history() == []

    def test_disconnect_unregisters(self, context, connect):
        conn = connect()
        context.disconnect(conn)
        assert conn.state is ConnectionState.CLOSED
        assert len(context.registry) == 0

    @pytest.mark.asyncio
    async def test_writer_failure_unregisters(self, context, connect):
        broken = connect(transport=FakeTransport(fail=True))
        healthy = connect()
        context.router.apply_content({"n": 1})
        await broken.pump()
        assert broken.state is ConnectionState.CLOSED
        assert broken not in context.registry
        assert healthy in context.registry
        assert context.fanout.publish({"type": "focus", "data": 1}) == 1
