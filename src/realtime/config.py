"""Configuration for the real-time event broadcast service."""

import logging
import os
from dataclasses import dataclass, fields
from enum import Enum

logger = logging.getLogger(__name__)

ENV_PREFIX = "TRACKIVITY_"


class MessagePriority(str, Enum):
    """Delivery priority of an event.

    Ordering is total: CRITICAL > HIGH > NORMAL > LOW.
    """
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    MessagePriority.LOW: 0,
    MessagePriority.NORMAL: 1,
    MessagePriority.HIGH: 2,
    MessagePriority.CRITICAL: 3,
}


class DisconnectReason(str, Enum):
    """Why a connection left the registry."""
    CLOSED = "closed"
    STALE = "stale"
    WRITE_FAILED = "write_failed"
    REPLACED = "replaced"
    REVOKED = "revoked"
    CLAIMS_CHANGED = "claims_changed"
    SHUTDOWN = "shutdown"


@dataclass
class RealtimeConfig:
    """Master configuration for the push connection service."""

    max_connections_per_user: int = 5
    max_global_connections: int = 10000
    channel_buffer_size: int = 1000
    backpressure_threshold: int = 800
    heartbeat_interval_seconds: int = 30
    connection_timeout_seconds: int = 300
    sweep_interval_seconds: int = 300
    handshake_rate_per_minute: int = 60
    replace_existing_session: bool = True
    default_ttl_seconds: int = 3600
    heartbeat_ttl_seconds: int = 60
    overflow_alert_threshold: int = 9000

    @classmethod
    def from_env(cls) -> "RealtimeConfig":
        """Build a config, overriding defaults from TRACKIVITY_* variables.

        ``TRACKIVITY_MAX_CONNECTIONS_PER_USER=3`` overrides
        ``max_connections_per_user`` and so on.
        """
        overrides = {}
        for f in fields(cls):
            raw = os.environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            if f.type in (bool, "bool"):
                overrides[f.name] = raw.strip().lower() in ("1", "true", "yes", "on")
            else:
                try:
                    overrides[f.name] = int(raw)
                except ValueError:
                    logger.warning("Ignoring non-integer %s%s=%r", ENV_PREFIX, f.name.upper(), raw)
        return cls(**overrides)
