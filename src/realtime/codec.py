"""Server-Sent Events framing.

Encodes events as SSE frames and incrementally decodes a line stream back
into frames on the client side.
"""

import json
import logging
from dataclasses import dataclass
from typing import List, Optional

from .config import MessagePriority
from .events import Event
from .exceptions import MalformedEventError

logger = logging.getLogger(__name__)

CRITICAL_RETRY_MS = 1000
DEFAULT_RETRY_MS = 5000


@dataclass
class SSEFrame:
    """One dispatched SSE frame."""

    event: str = "message"
    data: str = ""
    id: Optional[str] = None
    retry: Optional[int] = None


def retry_hint_ms(priority: MessagePriority) -> int:
    if priority == MessagePriority.CRITICAL:
        return CRITICAL_RETRY_MS
    return DEFAULT_RETRY_MS


def encode_event(event: Event) -> str:
    data = json.dumps(event.to_dict(), separators=(",", ":"), default=str)
    return (
        f"id: {event.message_id}\n"
        f"event: {event.event_type.value}\n"
        f"retry: {retry_hint_ms(event.priority)}\n"
        f"data: {data}\n\n"
    )


def encode_comment(text: str = "keep-alive") -> str:
    return f": {text}\n\n"


def decode_event(frame: SSEFrame) -> Event:
    """Turn a frame into an Event, raising MalformedEventError on bad input."""
    try:
        data = json.loads(frame.data)
    except (TypeError, ValueError) as exc:
        raise MalformedEventError(f"Invalid JSON in frame {frame.id!r}: {exc}") from exc
    event = Event.from_dict(data)
    if frame.event not in ("message", event.event_type.value):
        raise MalformedEventError(
            f"Frame event name {frame.event!r} disagrees with envelope "
            f"type {event.event_type.value!r}"
        )
    return event


class SSEDecoder:
    """Incremental line-oriented SSE parser."""

    def __init__(self):
        self._event: Optional[str] = None
        self._data: List[str] = []
        self._id: Optional[str] = None
        self._retry: Optional[int] = None
        self.last_event_id: Optional[str] = None

    def feed(self, line: str) -> Optional[SSEFrame]:
        """Consume one line (without terminator); return a frame when complete."""
        line = line.rstrip("\r\n")
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        elif name == "id":
            if "\0" not in value:
                self._id = value
        elif name == "retry":
            if value.isdigit():
                self._retry = int(value)
        else:
            logger.debug("Ignoring unknown SSE field %r", name)
        return None

    def _dispatch(self) -> Optional[SSEFrame]:
        if not self._data:
            self._event = None
            self._id = None
            self._retry = None
            return None
        frame = SSEFrame(
            event=self._event or "message",
            data="\n".join(self._data),
            id=self._id,
            retry=self._retry,
        )
        if self._id is not None:
            self.last_event_id = self._id
        self._event = None
        self._data = []
        self._id = None
        self._retry = None
        return frame
