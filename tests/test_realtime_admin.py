"""Tests for administrative introspection."""

import pytest

from conftest import FakeClock
from src.realtime.admin import AdminConsole, ConnectionStats
from src.realtime.config import MessagePriority, RealtimeConfig
from src.realtime.events import EventTarget, EventType
from src.realtime.hub import RealtimeHub
from src.realtime.registry import ConnectionIdentity


class TestAdminConsole:
    """Stats, cleanup and test broadcasts."""

    def setup_method(self):
        self.clock = FakeClock()
        self.hub = RealtimeHub(RealtimeConfig(connection_timeout_seconds=300), clock=self.clock)
        self.console = AdminConsole(self.hub)
        self.a = self.hub.open_connection(ConnectionIdentity.create(
            "sa", "alice", faculty_id="eng", permissions=["activity.view"]
        ))
        self.b = self.hub.open_connection(ConnectionIdentity.create(
            "sb", "bob", faculty_id="eng", permissions=["activity.view", "activity.manage"]
        ))
        self.c = self.hub.open_connection(ConnectionIdentity.create(
            "sc", "carol", is_admin=True
        ))

    def test_stats_counts(self):
        stats = self.console.stats()
        assert isinstance(stats, ConnectionStats)
        assert stats.total_connections == 3
        assert stats.unique_users == 3
        assert stats.connections_by_faculty == {"eng": 2, "unassigned": 1}
        assert stats.connections_by_permission == {"activity.view": 2, "activity.manage": 1}
        assert stats.connections_by_role == {"student": 2, "admin": 1}

    def test_stats_include_queue_depth(self):
        # Each connection holds its welcome event.
        assert self.console.stats().total_queued == 3

    def test_stats_average_age_and_staleness(self):
        self.clock.advance(100)
        self.hub.registry.touch(self.a.connection_id)
        self.clock.advance(250)
        stats = self.console.stats()
        assert stats.average_connection_age_seconds == pytest.approx(350.0)
        assert stats.stale_connections == 2

    def test_stats_are_read_only(self):
        self.clock.advance(1000)
        self.console.stats()
        assert self.hub.registry.get_connection_count() == 3

    def test_stats_to_dict(self):
        data = self.console.stats().to_dict()
        assert data["total_connections"] == 3
        assert "fanout" in data
        assert "uptime_seconds" in data

    def test_empty_registry(self):
        hub = RealtimeHub()
        stats = AdminConsole(hub).stats()
        assert stats.total_connections == 0
        assert stats.average_connection_age_seconds == 0.0

    def test_force_cleanup(self):
        self.clock.advance(200)
        self.hub.registry.touch(self.c.connection_id)
        self.clock.advance(200)
        assert self.console.force_cleanup() == 2
        assert self.hub.registry.get(self.c.connection_id) is not None

    def test_force_cleanup_with_threshold(self):
        self.clock.advance(10)
        assert self.console.force_cleanup(idle_threshold=5) == 3

    def test_test_broadcast_defaults_to_everyone(self):
        assert self.console.test_broadcast(sent_by="carol") == 3
        event = list(self.a.channel._queue)[-1]
        assert event.event_type == EventType.TEST_NOTIFICATION
        assert event.priority == MessagePriority.LOW
        assert event.message_id.startswith("test_")
        assert event.payload["sent_by"] == "carol"

    def test_test_broadcast_targeted(self):
        delivered = self.console.test_broadcast(
            title="Ping",
            message="Only Bob",
            target=EventTarget.for_user("bob"),
        )
        assert delivered == 1
        assert list(self.b.channel._queue)[-1].payload["title"] == "Ping"

    def test_test_broadcast_counted_by_fanout(self):
        self.console.test_broadcast()
        assert self.console.stats().fanout["events_dispatched"] == 1

    def test_send_heartbeat(self):
        assert self.console.send_heartbeat() == 3
