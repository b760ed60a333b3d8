"""Exceptions raised by the real-time broadcast core."""


class RealtimeError(Exception):
    """Base class for push service errors."""


class ConnectionLimitError(RealtimeError):
    """Raised when a registration would exceed a connection limit."""

    def __init__(self, user_id: str, limit: int, scope: str = "user"):
        self.user_id = user_id
        self.limit = limit
        self.scope = scope
        if scope == "global":
            message = f"Global connection limit of {limit} reached"
        else:
            message = f"User '{user_id}' already holds {limit} connections"
        super().__init__(message)


class HandshakeRateLimitedError(RealtimeError):
    """Raised when a session opens connections faster than allowed."""

    def __init__(self, session_id: str, retry_after: float = 0.0):
        self.session_id = session_id
        self.retry_after = retry_after
        super().__init__(
            f"Too many connection attempts. Retry after {retry_after:.1f}s."
        )


class MalformedEventError(RealtimeError):
    """Raised when an inbound frame cannot be decoded into an event."""
