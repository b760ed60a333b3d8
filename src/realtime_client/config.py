"""Configuration for the real-time client engine."""

import logging
import os
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class ClientState(str, Enum):
    """Connection lifecycle of the client engine."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    ERROR = "error"


@dataclass
class ClientConfig:
    """Reconnect, liveness and dedup settings."""

    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0
    max_reconnect_attempts: int = 10
    heartbeat_interval_seconds: float = 30.0
    heartbeat_timeout_seconds: float = 90.0
    dedup_capacity: int = 100
    recent_events_limit: int = 100
    inbox_capacity: int = 50
    auto_reconnect: bool = True

    def __post_init__(self):
        if self.heartbeat_timeout_seconds < 2 * self.heartbeat_interval_seconds:
            raise ValueError(
                "heartbeat_timeout_seconds must be at least twice heartbeat_interval_seconds"
            )
        if self.dedup_capacity < 1:
            raise ValueError("dedup_capacity must be positive")
        if self.inbox_capacity < 1:
            raise ValueError("inbox_capacity must be positive")

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Read TRACKIVITY_CLIENT_* overrides from the environment.

        Malformed values are logged and ignored.
        """
        kwargs = {}
        for name, cast in (
            ("base_delay_seconds", float),
            ("max_delay_seconds", float),
            ("max_reconnect_attempts", int),
            ("heartbeat_interval_seconds", float),
            ("heartbeat_timeout_seconds", float),
            ("dedup_capacity", int),
            ("recent_events_limit", int),
            ("inbox_capacity", int),
        ):
            var = f"TRACKIVITY_CLIENT_{name.upper()}"
            raw = os.environ.get(var)
            if raw is None:
                continue
            try:
                kwargs[name] = cast(raw)
            except ValueError:
                logger.warning("Ignoring malformed %s=%r", var, raw)
        auto = os.environ.get("TRACKIVITY_CLIENT_AUTO_RECONNECT")
        if auto is not None:
            kwargs["auto_reconnect"] = auto.strip().lower() in ("1", "true", "yes", "on")
        return cls(**kwargs)
