"""Per-connection bounded outbound queue with priority-aware dropping."""

import asyncio
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Deque, Optional

from .config import MessagePriority
from .events import Event

logger = logging.getLogger(__name__)

FailureCallback = Callable[[str, BaseException], None]
Writer = Callable[[Event], Awaitable[None]]

# Priorities that replace their own oldest entry on a full queue.
_FRESHNESS_PRIORITIES = (MessagePriority.LOW, MessagePriority.NORMAL)


@dataclass
class QueueStats:
    """Per-connection queue statistics."""

    connection_id: str = ""
    queue_depth: int = 0
    oldest_message_age_seconds: float = 0.0
    messages_sent: int = 0
    messages_dropped: int = 0
    messages_evicted: int = 0
    is_slow: bool = False


class DeliveryChannel:
    """Bounded FIFO between the fanout engine and one connection's writer.

    ``enqueue`` is safe to call from any thread and never blocks. When the
    queue is full the incoming event either evicts an older entry or is
    dropped:

    - CRITICAL always gets in, evicting the oldest entry of the lowest
      priority present.
    - LOW and NORMAL evict the oldest entry of the lowest queued priority
      when that priority is not above their own; otherwise they are dropped.
    - HIGH only evicts strictly lower-priority entries.
    """

    def __init__(
        self,
        connection_id: str,
        capacity: int = 1000,
        backpressure_threshold: Optional[int] = None,
        on_failure: Optional[FailureCallback] = None,
        clock: Callable[[], float] = time.time,
    ):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.connection_id = connection_id
        self._capacity = capacity
        self._threshold = backpressure_threshold or capacity
        self._on_failure = on_failure
        self._clock = clock
        self._queue: Deque[Event] = deque()
        self._lock = threading.Lock()
        self._closed = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._stats = QueueStats(connection_id=connection_id)

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    def enqueue(self, event: Event) -> bool:
        """Queue *event* for delivery. Returns False if it was dropped."""
        with self._lock:
            if self._closed:
                self._stats.messages_dropped += 1
                return False

            if len(self._queue) >= self._capacity:
                victim = self._select_victim_unlocked(event.priority)
                if victim is None:
                    self._stats.messages_dropped += 1
                    logger.debug(
                        "Queue full for %s, dropping %s event %s",
                        self.connection_id,
                        event.priority.value,
                        event.message_id,
                    )
                    return False
                evicted = self._queue[victim]
                del self._queue[victim]
                self._stats.messages_evicted += 1
                logger.debug(
                    "Queue full for %s, evicted %s event %s for %s event %s",
                    self.connection_id,
                    evicted.priority.value,
                    evicted.message_id,
                    event.priority.value,
                    event.message_id,
                )

            self._queue.append(event)
            if len(self._queue) >= self._threshold and not self._stats.is_slow:
                self._stats.is_slow = True
                logger.warning(
                    "Slow consumer %s: %d events queued",
                    self.connection_id,
                    len(self._queue),
                )

        self._notify()
        return True

    def _select_victim_unlocked(self, incoming: MessagePriority) -> Optional[int]:
        """Index of the entry to evict for *incoming*, or None to drop it."""
        if not self._queue:
            return None
        lowest = min(e.priority.rank for e in self._queue)
        evictable = (
            incoming == MessagePriority.CRITICAL
            or lowest < incoming.rank
            or (lowest == incoming.rank and incoming in _FRESHNESS_PRIORITIES)
        )
        if not evictable:
            return None
        for index, queued in enumerate(self._queue):
            if queued.priority.rank == lowest:
                return index
        return None

    def _pop(self) -> Optional[Event]:
        with self._lock:
            if not self._queue:
                return None
            event = self._queue.popleft()
            self._stats.messages_sent += 1
            if len(self._queue) < self._threshold:
                self._stats.is_slow = False
            return event

    def _has_pending(self) -> bool:
        with self._lock:
            return bool(self._queue)

    def _notify(self) -> None:
        loop, wakeup = self._loop, self._wakeup
        if loop is None or wakeup is None:
            return
        try:
            loop.call_soon_threadsafe(wakeup.set)
        except RuntimeError:
            logger.debug("Event loop for %s is closed; skipping wakeup", self.connection_id)

    async def events(self) -> AsyncIterator[Event]:
        """Yield queued events in FIFO order until the channel is closed."""
        self._loop = asyncio.get_running_loop()
        self._wakeup = asyncio.Event()
        while True:
            event = self._pop()
            if event is not None:
                yield event
                continue
            if self._closed:
                return
            self._wakeup.clear()
            if self._closed or self._has_pending():
                continue
            await self._wakeup.wait()

    async def run(self, writer: Writer) -> bool:
        """Drain the queue into *writer*.

        Returns True when the channel closed normally. A writer exception
        closes the channel and reports the failure to the owner.
        """
        try:
            async for event in self.events():
                await writer(event)
        except Exception as exc:
            logger.warning("Write failed on connection %s: %s", self.connection_id, exc)
            self.close(drain=False)
            if self._on_failure is not None:
                self._on_failure(self.connection_id, exc)
            return False
        return True

    def close(self, drain: bool = False) -> None:
        """Stop the writer, optionally after flushing what is queued."""
        with self._lock:
            if self._closed and drain:
                return
            self._closed = True
            if not drain and self._queue:
                self._stats.messages_dropped += len(self._queue)
                self._queue.clear()
        self._notify()

    def get_stats(self) -> QueueStats:
        with self._lock:
            stats = QueueStats(**vars(self._stats))
            stats.queue_depth = len(self._queue)
            if self._queue:
                age = self._clock() - self._queue[0].timestamp
                stats.oldest_message_age_seconds = max(age, 0.0)
            return stats
