"""Token bucket throttling of connection handshakes.

Each session gets its own bucket so a client stuck in a reconnect loop cannot
starve the registry.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict

from .exceptions import HandshakeRateLimitedError

logger = logging.getLogger(__name__)


class TokenBucket:
    """Allows up to `burst` attempts at once, refilling at `rate` per second."""

    def __init__(self, rate: float, burst: int, clock: Callable[[], float] = time.monotonic):
        self._rate = rate
        self._max_tokens = float(burst)
        self._tokens = float(burst)
        self._clock = clock
        self._last_refill = clock()
        self._lock = threading.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        self._tokens = min(self._max_tokens, self._tokens + elapsed * self._rate)
        self._last_refill = now

    def consume(self, tokens: int = 1) -> bool:
        with self._lock:
            self._refill()
            if self._tokens >= tokens:
                self._tokens -= tokens
                return True
            return False

    def is_full(self) -> bool:
        with self._lock:
            self._refill()
            return self._tokens >= self._max_tokens

    def retry_after(self) -> float:
        """Seconds until at least one token is available."""
        with self._lock:
            self._refill()
            if self._tokens >= 1:
                return 0.0
            return (1.0 - self._tokens) / self._rate


class HandshakeThrottle:
    """Per-session handshake limiter."""

    def __init__(self, per_minute: int = 60, clock: Callable[[], float] = time.monotonic):
        self._per_minute = max(per_minute, 1)
        self._clock = clock
        self._buckets: Dict[str, TokenBucket] = {}
        self._lock = threading.Lock()

    def _bucket(self, key: str) -> TokenBucket:
        with self._lock:
            bucket = self._buckets.get(key)
            if bucket is None:
                bucket = TokenBucket(self._per_minute / 60.0, self._per_minute, self._clock)
                self._buckets[key] = bucket
            return bucket

    def check(self, session_id: str) -> None:
        """Consume one attempt for *session_id* or raise HandshakeRateLimitedError."""
        bucket = self._bucket(session_id)
        if not bucket.consume():
            retry_after = bucket.retry_after()
            logger.warning(
                "Handshake rate limit hit for session=%s (retry in %.1fs)",
                session_id,
                retry_after,
            )
            raise HandshakeRateLimitedError(session_id, retry_after)

    def forget(self, session_id: str) -> bool:
        with self._lock:
            return self._buckets.pop(session_id, None) is not None

    def prune(self) -> int:
        """Drop buckets that have refilled completely.

        A full bucket allows the same burst as a fresh one, so forgetting it
        does not change what the session may do next.
        """
        with self._lock:
            idle = [key for key, bucket in self._buckets.items() if bucket.is_full()]
            for key in idle:
                del self._buckets[key]
        if idle:
            logger.debug("Pruned %d idle handshake buckets", len(idle))
        return len(idle)

    def get_metrics(self) -> Dict[str, Any]:
        with self._lock:
            return {"tracked_sessions": len(self._buckets), "per_minute": self._per_minute}
