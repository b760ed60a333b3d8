"""Exceptions raised by the real-time client."""


class ClientError(Exception):
    """Base class for client-side push errors."""


class TransportError(ClientError):
    """The push transport failed or closed unexpectedly."""


class HandshakeRejectedError(TransportError):
    """The server refused the stream handshake."""

    def __init__(self, status_code: int, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Handshake rejected with HTTP {status_code}{': ' + detail if detail else ''}")

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code in (401, 403)


class HeartbeatTimeoutError(TransportError):
    """No frame arrived within the heartbeat timeout."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"No heartbeat received for {timeout_seconds:.0f}s")


class ReconnectExhaustedError(ClientError):
    """Reconnect budget used up. The one error meant for end users."""

    USER_MESSAGE = (
        "Unable to reach the real-time service. "
        "Please reload the page or sign in again."
    )

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(self.USER_MESSAGE)
