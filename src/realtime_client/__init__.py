"""Resilient client for the real-time push channel."""

from .config import ClientState, ClientConfig
from .exceptions import (
    ClientError,
    TransportError,
    HandshakeRejectedError,
    HeartbeatTimeoutError,
    ReconnectExhaustedError,
)
from .backoff import backoff_delay, ExponentialBackoff
from .dedup import DedupBuffer
from .identity import (
    IdentityContext,
    IdentityProvider,
    Navigator,
    LoggingNavigator,
    InMemoryIdentityProvider,
)
from .inbox import InboxItem, NotificationInbox
from .reactions import Reaction, REACTIONS
from .scheduler import Scheduler, LoopScheduler
from .transport import ConnectRequest, Transport, HTTPStreamTransport
from .engine import ClientStatus, RealtimeClient, bind_identity

__all__ = [
    # Config
    "ClientState",
    "ClientConfig",
    # Errors
    "ClientError",
    "TransportError",
    "HandshakeRejectedError",
    "HeartbeatTimeoutError",
    "ReconnectExhaustedError",
    # Building blocks
    "backoff_delay",
    "ExponentialBackoff",
    "DedupBuffer",
    # Identity
    "IdentityContext",
    "IdentityProvider",
    "Navigator",
    "LoggingNavigator",
    "InMemoryIdentityProvider",
    # Inbox
    "InboxItem",
    "NotificationInbox",
    # Reactions
    "Reaction",
    "REACTIONS",
    # Transport
    "Scheduler",
    "LoopScheduler",
    "ConnectRequest",
    "Transport",
    "HTTPStreamTransport",
    # Engine
    "ClientStatus",
    "RealtimeClient",
    "bind_identity",
]
