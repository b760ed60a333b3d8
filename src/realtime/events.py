"""Event model shared by the server fanout and the client engine."""

import logging
import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional

from .config import MessagePriority
from .exceptions import MalformedEventError

logger = logging.getLogger(__name__)

class EventType(str, Enum):
    """Closed set of event kinds carried over the push channel."""
    RECORD_CHANGED = "record_changed"
    ACTIVITY_CHECKED_IN = "activity_checked_in"
    NEW_ACTIVITY_CREATED = "new_activity_created"
    SUBSCRIPTION_EXPIRY_WARNING = "subscription_expiry_warning"
    SYSTEM_ANNOUNCEMENT = "system_announcement"
    ADMIN_ASSIGNMENT = "admin_assignment"
    PERMISSION_UPDATED = "permission_updated"
    SESSION_REVOKED = "session_revoked"
    ADMIN_PROMOTED = "admin_promoted"
    NOTIFICATION = "notification"
    TEST_NOTIFICATION = "test_notification"
    HEARTBEAT = "heartbeat"
    CONNECTION_STATUS = "connection_status"


class AnnouncementSeverity(str, Enum):
    INFO = "info"
    IMPORTANT = "important"
    CRITICAL = "critical"


def new_message_id(prefix: str = "evt") -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


@dataclass(frozen=True)
class EventTarget:
    """Routing predicate for an event.

    Clauses are OR-ed: a connection matches when its session is listed, or
    its user/faculty equals the given one, or it holds any listed permission,
    or ``admins`` is set and it was opened by an administrator. A target with
    no clauses is a broadcast.
    """

    sessions: FrozenSet[str] = frozenset()
    user_id: Optional[str] = None
    faculty_id: Optional[str] = None
    permissions: FrozenSet[str] = frozenset()
    admins: bool = False

    @property
    def is_broadcast(self) -> bool:
        return (
            not self.sessions
            and self.user_id is None
            and self.faculty_id is None
            and not self.permissions
            and not self.admins
        )

    @classmethod
    def broadcast(cls) -> "EventTarget":
        return cls()

    @classmethod
    def for_sessions(cls, session_ids: Iterable[str]) -> "EventTarget":
        return cls(sessions=frozenset(session_ids))

    @classmethod
    def for_user(cls, user_id: str) -> "EventTarget":
        return cls(user_id=user_id)

    @classmethod
    def for_faculty(cls, faculty_id: str) -> "EventTarget":
        return cls(faculty_id=faculty_id)

    @classmethod
    def for_permissions(cls, permissions: Iterable[str]) -> "EventTarget":
        return cls(permissions=frozenset(permissions))

    @classmethod
    def for_admins(cls) -> "EventTarget":
        return cls(admins=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessions": sorted(self.sessions),
            "user_id": self.user_id,
            "faculty_id": self.faculty_id,
            "permissions": sorted(self.permissions),
            "admins": self.admins,
        }


@dataclass
class Event:
    """A routable event with priority, target and optional TTL.

    A ``ttl_seconds`` of None is filled with the hub default when the event
    is dispatched.
    """

    event_type: EventType
    payload: Dict[str, Any] = field(default_factory=dict)
    priority: MessagePriority = MessagePriority.NORMAL
    target: EventTarget = field(default_factory=EventTarget)
    ttl_seconds: Optional[float] = None
    timestamp: float = field(default_factory=time.time)
    message_id: str = field(default_factory=new_message_id)
    broadcast_id: Optional[str] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.ttl_seconds is None:
            return False
        now = time.time() if now is None else now
        return self.timestamp + self.ttl_seconds < now

    def to_dict(self) -> Dict[str, Any]:
        """Wire envelope. Routing targets stay server-side."""
        data = {
            "message_id": self.message_id,
            "event_type": self.event_type.value,
            "payload": self.payload,
            "priority": self.priority.value,
            "timestamp": self.timestamp,
            "ttl_seconds": self.ttl_seconds,
        }
        if self.broadcast_id is not None:
            data["broadcast_id"] = self.broadcast_id
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        """Parse a wire envelope, raising MalformedEventError on bad input."""
        if not isinstance(data, dict):
            raise MalformedEventError("Event envelope must be a JSON object")
        message_id = data.get("message_id")
        if not message_id or not isinstance(message_id, str):
            raise MalformedEventError("Event envelope is missing message_id")
        try:
            event_type = EventType(data.get("event_type"))
        except ValueError:
            raise MalformedEventError(f"Unknown event type: {data.get('event_type')!r}")
        try:
            priority = MessagePriority(data.get("priority", MessagePriority.NORMAL.value))
        except ValueError:
            raise MalformedEventError(f"Unknown priority: {data.get('priority')!r}")
        payload = data.get("payload") or {}
        if not isinstance(payload, dict):
            raise MalformedEventError("Event payload must be a JSON object")
        try:
            timestamp = float(data.get("timestamp", time.time()))
            ttl = data.get("ttl_seconds")
            ttl = float(ttl) if ttl is not None else None
        except (TypeError, ValueError):
            raise MalformedEventError("Event timestamp/ttl must be numeric")
        return cls(
            event_type=event_type,
            payload=payload,
            priority=priority,
            ttl_seconds=ttl,
            timestamp=timestamp,
            message_id=message_id,
            broadcast_id=data.get("broadcast_id"),
        )


# ── Payloads ─────────────────────────────────────────────────────────


@dataclass
class NotificationPayload:
    title: str
    message: str
    notification_type: str = "info"
    action_url: Optional[str] = None
    expires_at: Optional[float] = None


@dataclass
class SystemAnnouncementPayload:
    title: str
    message: str
    severity: AnnouncementSeverity = AnnouncementSeverity.INFO
    expires_at: Optional[float] = None


@dataclass
class RecordChangedPayload:
    record_type: str
    record_id: str
    action: str
    changes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ActivityCheckedInPayload:
    activity_id: str
    activity_name: str
    user_id: str
    user_name: str
    checked_in_at: float = field(default_factory=time.time)


@dataclass
class PermissionUpdatedPayload:
    user_id: str
    old_permissions: list = field(default_factory=list)
    new_permissions: list = field(default_factory=list)
    updated_by: Optional[str] = None
    requires_re_login: bool = False


@dataclass
class SessionRevokedPayload:
    session_id: str
    user_id: str
    reason: str
    message: str = "Your session has been revoked."
    revoked_by: Optional[str] = None


@dataclass
class AdminPromotedPayload:
    user_id: str
    new_role: str
    promoted_by: Optional[str] = None
    faculty_id: Optional[str] = None


@dataclass
class TestNotificationPayload:
    title: str
    message: str
    notification_type: str = "info"
    sent_by: Optional[str] = None


@dataclass
class NewActivityPayload:
    activity_id: str
    title: str
    description: str = ""
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    faculty_id: Optional[str] = None
    created_by: Optional[str] = None


@dataclass
class SubscriptionExpiryPayload:
    user_id: str
    subscription_type: str
    expires_at: float
    days_remaining: int
    renewal_url: Optional[str] = None


@dataclass
class AdminAssignmentPayload:
    assignment_id: str
    admin_id: str
    task_type: str
    task_description: str
    admin_name: Optional[str] = None
    due_date: Optional[float] = None
    priority: str = "normal"


@dataclass
class HeartbeatPayload:
    server_time: float
    connection_count: int
    uptime_seconds: float


@dataclass
class ConnectionStatusPayload:
    status: str
    connection_id: str
    message: str = ""


def _payload_dict(payload: Any) -> Dict[str, Any]:
    if payload is None:
        return {}
    if isinstance(payload, dict):
        return dict(payload)
    data = asdict(payload)
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in data.items()}


# ── Builder ──────────────────────────────────────────────────────────


class EventBuilder:
    """Fluent builder for events.

    Example:
        event = (
            EventBuilder(EventType.NOTIFICATION, payload)
            .to_faculty("engineering")
            .with_priority(MessagePriority.HIGH)
            .build()
        )
    """

    def __init__(self, event_type: EventType, payload: Any = None):
        self._event_type = EventType(event_type)
        self._payload = _payload_dict(payload)
        self._priority = MessagePriority.NORMAL
        self._ttl: Optional[float] = None
        self._sessions: FrozenSet[str] = frozenset()
        self._user_id: Optional[str] = None
        self._faculty_id: Optional[str] = None
        self._permissions: FrozenSet[str] = frozenset()
        self._admins = False
        self._broadcast_id: Optional[str] = None

    def to_sessions(self, session_ids: Iterable[str]) -> "EventBuilder":
        self._sessions = frozenset(session_ids)
        return self

    def to_user(self, user_id: str) -> "EventBuilder":
        self._user_id = user_id
        return self

    def to_faculty(self, faculty_id: str) -> "EventBuilder":
        self._faculty_id = faculty_id
        return self

    def with_permissions(self, permissions: Iterable[str]) -> "EventBuilder":
        self._permissions = frozenset(permissions)
        return self

    def to_admins(self) -> "EventBuilder":
        self._admins = True
        return self

    def with_priority(self, priority: MessagePriority) -> "EventBuilder":
        self._priority = MessagePriority(priority)
        return self

    def with_ttl(self, ttl_seconds: Optional[float]) -> "EventBuilder":
        self._ttl = ttl_seconds
        return self

    def with_broadcast_id(self, broadcast_id: str) -> "EventBuilder":
        self._broadcast_id = broadcast_id
        return self

    def build(self) -> Event:
        target = EventTarget(
            sessions=self._sessions,
            user_id=self._user_id,
            faculty_id=self._faculty_id,
            permissions=self._permissions,
            admins=self._admins,
        )
        return Event(
            event_type=self._event_type,
            payload=dict(self._payload),
            priority=self._priority,
            target=target,
            ttl_seconds=self._ttl,
            broadcast_id=self._broadcast_id,
        )


# ── Factories ────────────────────────────────────────────────────────


_SEVERITY_PRIORITY = {
    AnnouncementSeverity.CRITICAL: MessagePriority.CRITICAL,
    AnnouncementSeverity.IMPORTANT: MessagePriority.HIGH,
    AnnouncementSeverity.INFO: MessagePriority.NORMAL,
}


def system_announcement(
    title: str,
    message: str,
    severity: AnnouncementSeverity = AnnouncementSeverity.INFO,
    target: Optional[EventTarget] = None,
    ttl_seconds: float = 24 * 3600,
) -> Event:
    """Announcement whose priority follows its severity."""
    severity = AnnouncementSeverity(severity)
    payload = SystemAnnouncementPayload(title=title, message=message, severity=severity)
    return Event(
        event_type=EventType.SYSTEM_ANNOUNCEMENT,
        payload=_payload_dict(payload),
        priority=_SEVERITY_PRIORITY[severity],
        target=target or EventTarget(),
        ttl_seconds=ttl_seconds,
        broadcast_id=new_message_id("bcast"),
    )


def notification(
    title: str,
    message: str,
    target: EventTarget,
    notification_type: str = "info",
    priority: MessagePriority = MessagePriority.NORMAL,
    action_url: Optional[str] = None,
    ttl_seconds: Optional[float] = None,
) -> Event:
    payload = NotificationPayload(
        title=title,
        message=message,
        notification_type=notification_type,
        action_url=action_url,
    )
    return Event(
        event_type=EventType.NOTIFICATION,
        payload=_payload_dict(payload),
        priority=MessagePriority(priority),
        target=target,
        ttl_seconds=ttl_seconds,
    )


def heartbeat_event(
    connection_count: int,
    uptime_seconds: float,
    ttl_seconds: float = 60,
) -> Event:
    payload = HeartbeatPayload(
        server_time=time.time(),
        connection_count=connection_count,
        uptime_seconds=uptime_seconds,
    )
    return Event(
        event_type=EventType.HEARTBEAT,
        payload=_payload_dict(payload),
        priority=MessagePriority.LOW,
        ttl_seconds=ttl_seconds,
        message_id=new_message_id("hb"),
    )


def session_revoked_event(
    session_id: str,
    user_id: str,
    reason: str,
    message: str = "Your session has been revoked.",
    revoked_by: Optional[str] = None,
) -> Event:
    payload = SessionRevokedPayload(
        session_id=session_id,
        user_id=user_id,
        reason=reason,
        message=message,
        revoked_by=revoked_by,
    )
    return Event(
        event_type=EventType.SESSION_REVOKED,
        payload=_payload_dict(payload),
        priority=MessagePriority.CRITICAL,
        target=EventTarget.for_sessions([session_id]),
        ttl_seconds=300,
    )


def connection_status_event(connection_id: str, session_id: str) -> Event:
    payload = ConnectionStatusPayload(
        status="connected",
        connection_id=connection_id,
        message="Real-time connection established",
    )
    return Event(
        event_type=EventType.CONNECTION_STATUS,
        payload=_payload_dict(payload),
        priority=MessagePriority.HIGH,
        target=EventTarget.for_sessions([session_id]),
        ttl_seconds=30,
    )


def new_activity_event(
    activity_id: str,
    title: str,
    description: str = "",
    start_time: Optional[float] = None,
    end_time: Optional[float] = None,
    faculty_id: Optional[str] = None,
    created_by: Optional[str] = None,
    ttl_seconds: float = 24 * 3600,
) -> Event:
    """New activity, scoped to its faculty or to everyone when it has none."""
    payload = NewActivityPayload(
        activity_id=activity_id,
        title=title,
        description=description,
        start_time=start_time,
        end_time=end_time,
        faculty_id=faculty_id,
        created_by=created_by,
    )
    target = EventTarget.for_faculty(faculty_id) if faculty_id else EventTarget()
    return Event(
        event_type=EventType.NEW_ACTIVITY_CREATED,
        payload=_payload_dict(payload),
        priority=MessagePriority.NORMAL,
        target=target,
        ttl_seconds=ttl_seconds,
        broadcast_id=f"new_activity_{activity_id}",
    )


def subscription_expiry_warning(
    user_id: str,
    subscription_type: str,
    expires_at: float,
    days_remaining: int,
    renewal_url: Optional[str] = None,
    ttl_seconds: float = 7 * 24 * 3600,
) -> Event:
    payload = SubscriptionExpiryPayload(
        user_id=user_id,
        subscription_type=subscription_type,
        expires_at=expires_at,
        days_remaining=days_remaining,
        renewal_url=renewal_url,
    )
    return Event(
        event_type=EventType.SUBSCRIPTION_EXPIRY_WARNING,
        payload=_payload_dict(payload),
        priority=MessagePriority.HIGH,
        target=EventTarget.for_user(user_id),
        ttl_seconds=ttl_seconds,
    )


def admin_assignment_event(
    assignment_id: str,
    admin_id: str,
    task_type: str,
    task_description: str,
    admin_name: Optional[str] = None,
    due_date: Optional[float] = None,
    priority: MessagePriority = MessagePriority.NORMAL,
) -> Event:
    """Task handed to one administrator; the payload carries the task priority."""
    priority = MessagePriority(priority)
    payload = AdminAssignmentPayload(
        assignment_id=assignment_id,
        admin_id=admin_id,
        task_type=task_type,
        task_description=task_description,
        admin_name=admin_name,
        due_date=due_date,
        priority=priority.value,
    )
    return Event(
        event_type=EventType.ADMIN_ASSIGNMENT,
        payload=_payload_dict(payload),
        priority=priority,
        target=EventTarget.for_user(admin_id),
    )


def admin_alert(
    title: str,
    message: str,
    severity: AnnouncementSeverity = AnnouncementSeverity.IMPORTANT,
    ttl_seconds: float = 24 * 3600,
) -> Event:
    """Announcement delivered only to administrator connections."""
    severity = AnnouncementSeverity(severity)
    payload = SystemAnnouncementPayload(title=title, message=message, severity=severity)
    return Event(
        event_type=EventType.SYSTEM_ANNOUNCEMENT,
        payload=_payload_dict(payload),
        priority=_SEVERITY_PRIORITY[severity],
        target=EventTarget.for_admins(),
        ttl_seconds=ttl_seconds,
        message_id=new_message_id("admin_alert"),
    )
