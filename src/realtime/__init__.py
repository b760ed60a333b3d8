"""Targeted real-time event broadcast over Server-Sent Events."""

from .config import (
    MessagePriority,
    DisconnectReason,
    RealtimeConfig,
)
from .exceptions import (
    RealtimeError,
    ConnectionLimitError,
    HandshakeRateLimitedError,
    MalformedEventError,
)
from .events import (
    EventType,
    EventTarget,
    Event,
    EventBuilder,
    AnnouncementSeverity,
    system_announcement,
    notification,
    heartbeat_event,
    session_revoked_event,
    new_activity_event,
    subscription_expiry_warning,
    admin_assignment_event,
    admin_alert,
)
from .codec import SSEFrame, SSEDecoder, encode_event, decode_event
from .channel import QueueStats, DeliveryChannel
from .registry import ConnectionIdentity, ConnectionRecord, ConnectionRegistry
from .fanout import DispatchReport, FanoutStats, FanoutEngine, matches
from .throttle import HandshakeThrottle
from .hub import RealtimeHub
from .admin import ConnectionStats, AdminConsole

__all__ = [
    # Config
    "MessagePriority",
    "DisconnectReason",
    "RealtimeConfig",
    # Errors
    "RealtimeError",
    "ConnectionLimitError",
    "HandshakeRateLimitedError",
    "MalformedEventError",
    # Events
    "EventType",
    "EventTarget",
    "Event",
    "EventBuilder",
    "AnnouncementSeverity",
    "system_announcement",
    "notification",
    "heartbeat_event",
    "session_revoked_event",
    "new_activity_event",
    "subscription_expiry_warning",
    "admin_assignment_event",
    "admin_alert",
    # Codec
    "SSEFrame",
    "SSEDecoder",
    "encode_event",
    "decode_event",
    # Channel
    "QueueStats",
    "DeliveryChannel",
    # Registry
    "ConnectionIdentity",
    "ConnectionRecord",
    "ConnectionRegistry",
    # Fanout
    "DispatchReport",
    "FanoutStats",
    "FanoutEngine",
    "matches",
    # Hub
    "HandshakeThrottle",
    "RealtimeHub",
    # Admin
    "ConnectionStats",
    "AdminConsole",
]
