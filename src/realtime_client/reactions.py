"""Mandated client-side reactions per event type."""

from enum import Enum
from typing import Dict

from src.realtime.events import EventType


class Reaction(str, Enum):
    NONE = "none"
    LIVENESS = "liveness"
    REFRESH_IDENTITY = "refresh_identity"
    FORCE_SIGN_OUT = "force_sign_out"


# Every EventType must appear here; the engine looks reactions up directly.
REACTIONS: Dict[EventType, Reaction] = {
    EventType.RECORD_CHANGED: Reaction.NONE,
    EventType.ACTIVITY_CHECKED_IN: Reaction.NONE,
    EventType.NEW_ACTIVITY_CREATED: Reaction.NONE,
    EventType.SUBSCRIPTION_EXPIRY_WARNING: Reaction.NONE,
    EventType.SYSTEM_ANNOUNCEMENT: Reaction.NONE,
    EventType.ADMIN_ASSIGNMENT: Reaction.NONE,
    EventType.PERMISSION_UPDATED: Reaction.REFRESH_IDENTITY,
    EventType.SESSION_REVOKED: Reaction.FORCE_SIGN_OUT,
    EventType.ADMIN_PROMOTED: Reaction.REFRESH_IDENTITY,
    EventType.NOTIFICATION: Reaction.NONE,
    EventType.TEST_NOTIFICATION: Reaction.NONE,
    EventType.HEARTBEAT: Reaction.LIVENESS,
    EventType.CONNECTION_STATUS: Reaction.NONE,
}

_missing = set(EventType) - set(REACTIONS)
if _missing:
    raise RuntimeError(f"No client reaction defined for: {sorted(t.value for t in _missing)}")
