"""
Unit tests for presence tracking, the live channel and fan-out.
"""

import json

import pytest

from nearhelp.core.tasks import BackgroundTaskRunner
from nearhelp.models.user import Identity
from nearhelp.services.live.channel import LiveChannelManager, envelope
from nearhelp.services.live.fanout import FanoutNotifier, LiveEvent
from nearhelp.services.live.presence import InMemoryPresenceRegistry, PresenceRegistry

from tests.mocks.live_mocks import MockWebSocket


class TestPresenceRegistry:

    def setup_method(self):
        self.presence = InMemoryPresenceRegistry()
        self.presence.start()

    def test_counts_distinct_users(self):
        self.presence.connect("u1", "c1")
        self.presence.connect("u1", "c2")
        self.presence.connect("u2", "c3")

        assert self.presence.count_active_users() == 2
        assert sorted(self.presence.connected_user_ids()) == ["u1", "u2"]
        assert self.presence.connections_for("u1") == {"c1", "c2"}

    def test_user_leaves_with_last_connection(self):
        self.presence.connect("u1", "c1")
        self.presence.connect("u1", "c2")

        self.presence.disconnect("u1", "c1")
        assert self.presence.count_active_users() == 1

        self.presence.disconnect("u1", "c2")
        assert self.presence.count_active_users() == 0
        assert self.presence.connections_for("u1") == set()

    def test_unknown_disconnect_is_ignored(self):
        self.presence.disconnect("ghost", "c1")
        self.presence.connect(None, "c2")

        assert self.presence.count_active_users() == 0

    def test_clear_and_stop_reset_state(self):
        self.presence.connect("u1", "c1")
        self.presence.clear()
        assert self.presence.count_active_users() == 0

        self.presence.connect("u1", "c1")
        self.presence.stop()
        assert self.presence.count_active_users() == 0
        assert self.presence.running is False

    def test_is_a_presence_registry(self):
        assert isinstance(self.presence, PresenceRegistry)
        with pytest.raises(TypeError):
            PresenceRegistry()


class TestLiveChannelManager:

    def setup_method(self):
        self.presence = InMemoryPresenceRegistry()
        self.manager = LiveChannelManager(self.presence, send_timeout=0.05)

    @pytest.mark.asyncio
    async def test_connection_lifecycle(self):
        websocket = MockWebSocket()
        identity = Identity(user_id="u1")

        connection = await self.manager.connect(websocket, identity)

        assert websocket.accept_called
        assert connection.id in self.manager.active_connections
        assert self.presence.count_active_users() == 1
        hello = json.loads(websocket.messages_sent[0])
        assert hello['event'] == 'connected'
        assert hello['data']['id'] == connection.id

        self.manager.disconnect(connection.id)

        assert connection.id not in self.manager.active_connections
        assert self.presence.count_active_users() == 0

    @pytest.mark.asyncio
    async def test_anonymous_session_is_read_only_and_not_counted(self):
        connection = await self.manager.connect(MockWebSocket())

        assert connection.read_only
        assert self.presence.count_active_users() == 0
        assert self.manager.connection_count == 1

    @pytest.mark.asyncio
    async def test_broadcast_drops_failed_and_slow_clients(self):
        healthy = MockWebSocket()
        await self.manager.connect(healthy)
        broken = MockWebSocket()
        broken_connection = await self.manager.connect(broken, Identity(user_id="u2"))
        broken.fail_on_send = True
        slow = MockWebSocket()
        slow_connection = await self.manager.connect(slow)
        slow.send_delay = 1.0

        delivered = await self.manager.broadcast("incident.updated", {"id": "i1"})

        assert delivered == 1
        assert json.loads(healthy.messages_sent[-1]) == {"event": "incident.updated", "data": {"id": "i1"}}
        assert broken_connection.id not in self.manager.active_connections
        assert slow_connection.id not in self.manager.active_connections
        assert self.presence.count_active_users() == 0

    @pytest.mark.asyncio
    async def test_broadcast_without_sessions(self):
        assert await self.manager.broadcast("incident.updated", {}) == 0

    @pytest.mark.asyncio
    async def test_close_all(self):
        websocket = MockWebSocket()
        await self.manager.connect(websocket, Identity(user_id="u1"))

        await self.manager.close_all()

        assert websocket.is_closed
        assert self.manager.connection_count == 0
        assert self.presence.count_active_users() == 0

    def test_envelope_shape(self):
        assert json.loads(envelope("metrics.updated", {"a": 1})) == {"event": "metrics.updated", "data": {"a": 1}}


class StaticMetrics:
    def snapshot(self):
        return {"activeIncidents": 7}


class TestFanoutNotifier:

    def setup_method(self):
        self.presence = InMemoryPresenceRegistry()
        self.channel = LiveChannelManager(self.presence, send_timeout=0.05)
        self.runner = BackgroundTaskRunner("fanout-test")
        self.fanout = FanoutNotifier(self.channel, StaticMetrics(), self.runner)

    @pytest.mark.asyncio
    async def test_publish_is_detached(self):
        websocket = MockWebSocket()
        await self.channel.connect(websocket)

        task = self.fanout.publish(LiveEvent.INCIDENT_CREATED, {"id": "i1"})

        assert task is not None
        assert len(websocket.messages_sent) == 1
        await self.runner.drain()
        assert websocket.last("incident.created") == {"id": "i1"}

    @pytest.mark.asyncio
    async def test_publish_metrics_sends_fresh_snapshot(self):
        websocket = MockWebSocket()
        await self.channel.connect(websocket)

        self.fanout.publish_metrics()
        await self.runner.drain()

        assert websocket.last("metrics.updated") == {"activeIncidents": 7}

    @pytest.mark.asyncio
    async def test_slow_receiver_does_not_block_publisher(self):
        slow = MockWebSocket()
        await self.channel.connect(slow)
        slow.send_delay = 0.5

        self.fanout.publish(LiveEvent.INCIDENT_UPDATED, {"id": "i1"})
        assert self.runner.pending == 1

        await self.runner.drain()
        assert self.channel.connection_count == 0

    @pytest.mark.asyncio
    async def test_publish_after_shutdown_is_dropped(self):
        await self.runner.shutdown()

        assert self.fanout.publish(LiveEvent.INCIDENT_UPDATED, {}) is None
