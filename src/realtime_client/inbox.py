"""Notification inbox kept by the client from user-facing push events.

Entries are newest first and capped; expired entries disappear from every
read and from the unread count.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from src.realtime.config import MessagePriority
from src.realtime.events import Event, EventType

logger = logging.getLogger(__name__)

DEFAULT_INBOX_CAPACITY = 50
CHECK_IN_LIFETIME_SECONDS = 3600
NEW_ACTIVITY_LIFETIME_SECONDS = 24 * 3600

_SEVERITY_TYPE = {
    "critical": "error",
    "important": "warning",
}


@dataclass
class InboxItem:
    """One entry shown to the user."""

    message_id: str
    event_type: EventType
    title: str
    message: str
    notification_type: str = "info"
    priority: MessagePriority = MessagePriority.NORMAL
    received_at: float = 0.0
    expires_at: Optional[float] = None
    action_url: Optional[str] = None
    read: bool = False

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now


def _number(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    return None


def _from_notification(event: Event, now: float) -> Dict[str, Any]:
    p = event.payload
    return {
        "title": p.get("title", ""),
        "message": p.get("message", ""),
        "notification_type": p.get("notification_type", "info"),
        "action_url": p.get("action_url"),
        "expires_at": _number(p.get("expires_at")),
    }


def _from_announcement(event: Event, now: float) -> Dict[str, Any]:
    p = event.payload
    return {
        "title": p.get("title", ""),
        "message": p.get("message", ""),
        "notification_type": _SEVERITY_TYPE.get(p.get("severity"), "info"),
        "expires_at": _number(p.get("expires_at")),
    }


def _from_check_in(event: Event, now: float) -> Dict[str, Any]:
    p = event.payload
    return {
        "title": "Checked in",
        "message": f"{p.get('user_name', 'Someone')} checked in to {p.get('activity_name', 'an activity')}",
        "notification_type": "success",
        "expires_at": now + CHECK_IN_LIFETIME_SECONDS,
    }


def _from_new_activity(event: Event, now: float) -> Dict[str, Any]:
    return {
        "title": "New activity",
        "message": event.payload.get("title", ""),
        "notification_type": "info",
        "expires_at": now + NEW_ACTIVITY_LIFETIME_SECONDS,
    }


def _from_subscription_expiry(event: Event, now: float) -> Dict[str, Any]:
    p = event.payload
    return {
        "title": "Subscription expiring",
        "message": (
            f"Your {p.get('subscription_type', '')} subscription expires in "
            f"{p.get('days_remaining', 0)} days"
        ),
        "notification_type": "warning",
        "action_url": p.get("renewal_url"),
        "expires_at": _number(p.get("expires_at")),
    }


def _from_permission_update(event: Event, now: float) -> Dict[str, Any]:
    return {
        "title": "Permissions updated",
        "message": "Your account permissions have been updated.",
        "notification_type": "info",
    }


def _from_promotion(event: Event, now: float) -> Dict[str, Any]:
    return {
        "title": "Administrator access granted",
        "message": f"You are now {event.payload.get('new_role', 'an administrator')}.",
        "notification_type": "success",
    }


_CONVERTERS: Dict[EventType, Callable[[Event, float], Dict[str, Any]]] = {
    EventType.NOTIFICATION: _from_notification,
    EventType.TEST_NOTIFICATION: _from_notification,
    EventType.SYSTEM_ANNOUNCEMENT: _from_announcement,
    EventType.ACTIVITY_CHECKED_IN: _from_check_in,
    EventType.NEW_ACTIVITY_CREATED: _from_new_activity,
    EventType.SUBSCRIPTION_EXPIRY_WARNING: _from_subscription_expiry,
    EventType.PERMISSION_UPDATED: _from_permission_update,
    EventType.ADMIN_PROMOTED: _from_promotion,
}


class NotificationInbox:
    """Bounded, newest-first list of user-facing notifications."""

    def __init__(
        self,
        capacity: int = DEFAULT_INBOX_CAPACITY,
        clock: Callable[[], float] = time.time,
    ):
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self._capacity = capacity
        self._clock = clock
        self._items: List[InboxItem] = []
        self._lock = threading.Lock()

    @staticmethod
    def accepts(event_type: EventType) -> bool:
        return event_type in _CONVERTERS

    def add_from_event(self, event: Event) -> Optional[InboxItem]:
        """Record *event* when it is user-facing. Returns the new entry or None."""
        converter = _CONVERTERS.get(event.event_type)
        if converter is None:
            return None
        now = self._clock()
        item = InboxItem(
            message_id=event.message_id,
            event_type=event.event_type,
            priority=event.priority,
            received_at=now,
            **converter(event, now),
        )
        with self._lock:
            self._items.insert(0, item)
            del self._items[self._capacity:]
        return item

    def items(self) -> List[InboxItem]:
        """Live entries, newest first. Expired entries are pruned."""
        self.prune()
        with self._lock:
            return list(self._items)

    def unread_count(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for item in self._items if not item.read and not item.is_expired(now))

    def mark_as_read(self, message_id: str) -> bool:
        """Mark one entry read; an expired entry is removed instead."""
        now = self._clock()
        with self._lock:
            for index, item in enumerate(self._items):
                if item.message_id != message_id:
                    continue
                if item.is_expired(now):
                    del self._items[index]
                else:
                    item.read = True
                return True
        return False

    def mark_all_read(self) -> int:
        with self._lock:
            unread = [item for item in self._items if not item.read]
            for item in unread:
                item.read = True
        return len(unread)

    def remove(self, message_id: str) -> bool:
        with self._lock:
            for index, item in enumerate(self._items):
                if item.message_id == message_id:
                    del self._items[index]
                    return True
        return False

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def prune(self) -> int:
        now = self._clock()
        with self._lock:
            before = len(self._items)
            self._items = [item for item in self._items if not item.is_expired(now)]
            removed = before - len(self._items)
        if removed:
            logger.debug("Pruned %d expired inbox entries", removed)
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
