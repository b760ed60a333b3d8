"""Targeting and fanout of events onto connection channels."""

import dataclasses
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from .config import DisconnectReason
from .events import (
    AnnouncementSeverity,
    Event,
    EventTarget,
    admin_alert,
    session_revoked_event,
)
from .registry import ConnectionIdentity, ConnectionRecord, ConnectionRegistry

logger = logging.getLogger(__name__)


@dataclass
class DispatchReport:
    """Outcome of routing one event."""

    message_id: str
    matched: int = 0
    delivered: int = 0
    dropped: int = 0
    expired: int = 0


@dataclass
class FanoutStats:
    """Cumulative routing counters."""

    events_dispatched: int = 0
    events_expired: int = 0
    deliveries: int = 0
    drops: int = 0


def matches(identity: ConnectionIdentity, target: EventTarget) -> bool:
    """Whether a connection opened under *identity* is addressed by *target*."""
    if target.is_broadcast:
        return True
    if target.sessions and identity.session_id in target.sessions:
        return True
    if target.user_id is not None and identity.user_id == target.user_id:
        return True
    if target.faculty_id is not None and identity.faculty_id == target.faculty_id:
        return True
    if target.permissions and not target.permissions.isdisjoint(identity.permissions):
        return True
    if target.admins and identity.is_admin:
        return True
    return False


class FanoutEngine:
    """Routes events to the matching subset of registered connections.

    Each dispatch works on a registry snapshot and only enqueues onto
    channels, so a slow or full consumer never blocks the others. Events
    dispatched without a TTL get *default_ttl_seconds* when one is set.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        clock: Callable[[], float] = time.time,
        default_ttl_seconds: Optional[float] = None,
    ):
        self._registry = registry
        self._clock = clock
        self._default_ttl = default_ttl_seconds
        self._stats = FanoutStats()
        self._lock = threading.Lock()

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    def dispatch(self, event: Event) -> int:
        """Route *event* and return how many connections it was queued for."""
        return self.dispatch_report(event).delivered

    def dispatch_report(self, event: Event) -> DispatchReport:
        if event.ttl_seconds is None and self._default_ttl is not None:
            event = dataclasses.replace(event, ttl_seconds=self._default_ttl)
        report = DispatchReport(message_id=event.message_id)
        targets = self.resolve(event.target)
        report.matched = len(targets)

        if event.is_expired(self._clock()):
            report.expired = report.matched
            report.dropped = report.matched
            logger.debug(
                "Event %s (%s) expired before dispatch; dropped for %d connections",
                event.message_id,
                event.event_type.value,
                report.matched,
            )
        else:
            for record in targets:
                if record.channel.enqueue(event):
                    report.delivered += 1
                else:
                    report.dropped += 1

        with self._lock:
            self._stats.events_dispatched += 1
            self._stats.deliveries += report.delivered
            self._stats.drops += report.dropped
            if report.expired:
                self._stats.events_expired += 1

        logger.debug(
            "Dispatched %s (%s, %s) matched=%d delivered=%d dropped=%d",
            event.message_id,
            event.event_type.value,
            event.priority.value,
            report.matched,
            report.delivered,
            report.dropped,
            extra={"event_type": event.event_type.value, "delivered": report.delivered},
        )
        return report

    def resolve(self, target: EventTarget) -> List[ConnectionRecord]:
        """Connections addressed by *target*, each listed once."""
        return [r for r in self._registry.snapshot() if matches(r.identity, target)]

    # ── Convenience senders ──────────────────────────────────────────

    def broadcast(self, event: Event) -> int:
        return self.dispatch(dataclasses.replace(event, target=EventTarget.broadcast()))

    def send_to_user(self, user_id: str, event: Event) -> int:
        return self.dispatch(dataclasses.replace(event, target=EventTarget.for_user(user_id)))

    def send_to_faculty(self, faculty_id: str, event: Event) -> int:
        return self.dispatch(dataclasses.replace(event, target=EventTarget.for_faculty(faculty_id)))

    def send_to_permissions(self, permissions: Iterable[str], event: Event) -> int:
        target = EventTarget.for_permissions(permissions)
        return self.dispatch(dataclasses.replace(event, target=target))

    def send_to_sessions(self, session_ids: Iterable[str], event: Event) -> int:
        target = EventTarget.for_sessions(session_ids)
        return self.dispatch(dataclasses.replace(event, target=target))

    def broadcast_to_admins(self, event: Event) -> int:
        return self.dispatch(dataclasses.replace(event, target=EventTarget.for_admins()))

    def send_admin_alert(
        self,
        title: str,
        message: str,
        severity: AnnouncementSeverity = AnnouncementSeverity.IMPORTANT,
    ) -> int:
        delivered = self.dispatch(admin_alert(title, message, severity))
        logger.info("Admin alert \"%s\" sent to %d connections", title, delivered)
        return delivered

    def force_disconnect_user(
        self,
        user_id: str,
        reason: str = "forced_logout",
        message: str = "Your session has been revoked.",
        revoked_by: Optional[str] = None,
        session_id: Optional[str] = None,
    ) -> int:
        """Revoke a user's connections (or one session of them).

        Each affected session is sent a CRITICAL session_revoked event before
        its connections are removed. Returns the number of connections closed.
        """
        records = self._registry.get_user_connections(user_id)
        if session_id is not None:
            records = [r for r in records if r.session_id == session_id]
        sessions = sorted({r.session_id for r in records})
        for sid in sessions:
            self.dispatch(session_revoked_event(sid, user_id, reason, message, revoked_by))
        for record in records:
            self._registry.deregister(record.connection_id, DisconnectReason.REVOKED)
        if records:
            logger.info(
                "Force-disconnected %d connections for user=%s reason=%s",
                len(records),
                user_id,
                reason,
            )
        return len(records)

    def get_stats(self) -> FanoutStats:
        with self._lock:
            return dataclasses.replace(self._stats)

    def get_stats_dict(self) -> Dict[str, int]:
        return dataclasses.asdict(self.get_stats())
