"""Administrative introspection and control over live connections."""

import logging
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from .config import MessagePriority
from .events import Event, EventTarget, EventType, TestNotificationPayload, new_message_id
from .hub import RealtimeHub

logger = logging.getLogger(__name__)

TEST_NOTIFICATION_TTL_SECONDS = 1800


@dataclass
class ConnectionStats:
    """Read-only view of the registry at one point in time."""

    total_connections: int = 0
    unique_users: int = 0
    connections_by_faculty: Dict[str, int] = field(default_factory=dict)
    connections_by_permission: Dict[str, int] = field(default_factory=dict)
    connections_by_role: Dict[str, int] = field(default_factory=dict)
    average_connection_age_seconds: float = 0.0
    stale_connections: int = 0
    total_queued: int = 0
    total_dropped: int = 0
    slow_consumers: List[str] = field(default_factory=list)
    fanout: Dict[str, int] = field(default_factory=dict)
    uptime_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class AdminConsole:
    """Statistics, forced cleanup and test broadcasts for operators.

    ``stats`` never mutates anything; ``force_cleanup`` and ``test_broadcast``
    reuse the registry sweep and fanout dispatch rather than side channels.
    """

    def __init__(self, hub: RealtimeHub):
        self._hub = hub

    def stats(self, now: Optional[float] = None) -> ConnectionStats:
        hub = self._hub
        now = hub.now() if now is None else now
        records = hub.registry.snapshot()
        threshold = hub.config.connection_timeout_seconds

        by_faculty: Counter = Counter()
        by_permission: Counter = Counter()
        by_role: Counter = Counter()
        users = set()
        total_age = 0.0
        stale = 0
        queued = 0
        dropped = 0
        slow: List[str] = []

        for record in records:
            users.add(record.user_id)
            by_faculty[record.faculty_id or "unassigned"] += 1
            for permission in record.permissions:
                by_permission[permission] += 1
            by_role["admin" if record.identity.is_admin else "student"] += 1
            total_age += max(now - record.connected_at, 0.0)
            if now - record.last_seen_at > threshold:
                stale += 1
            queue = record.channel.get_stats()
            queued += queue.queue_depth
            dropped += queue.messages_dropped + queue.messages_evicted
            if queue.is_slow:
                slow.append(record.connection_id)

        return ConnectionStats(
            total_connections=len(records),
            unique_users=len(users),
            connections_by_faculty=dict(by_faculty),
            connections_by_permission=dict(by_permission),
            connections_by_role=dict(by_role),
            average_connection_age_seconds=total_age / len(records) if records else 0.0,
            stale_connections=stale,
            total_queued=queued,
            total_dropped=dropped,
            slow_consumers=slow,
            fanout=hub.fanout.get_stats_dict(),
            uptime_seconds=hub.uptime_seconds,
        )

    def force_cleanup(self, idle_threshold: Optional[float] = None) -> int:
        """Run the staleness sweep now. Returns the number of evicted connections."""
        evicted = self._hub.registry.sweep(idle_threshold=idle_threshold)
        logger.info("Forced cleanup evicted %d connections", len(evicted))
        return len(evicted)

    def test_broadcast(
        self,
        title: str = "Test notification",
        message: str = "This is a test notification.",
        target: Optional[EventTarget] = None,
        notification_type: str = "info",
        sent_by: Optional[str] = None,
    ) -> int:
        """Route a synthetic LOW priority event through the normal fanout path."""
        payload = TestNotificationPayload(
            title=title,
            message=message,
            notification_type=notification_type,
            sent_by=sent_by,
        )
        event = Event(
            event_type=EventType.TEST_NOTIFICATION,
            payload=asdict(payload),
            priority=MessagePriority.LOW,
            target=target or EventTarget.broadcast(),
            ttl_seconds=TEST_NOTIFICATION_TTL_SECONDS,
            message_id=new_message_id("test"),
        )
        delivered = self._hub.fanout.dispatch(event)
        logger.info("Test notification %s delivered to %d connections", event.message_id, delivered)
        return delivered

    def send_heartbeat(self) -> int:
        return self._hub.send_heartbeat()
