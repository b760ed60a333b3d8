"""Connection registry for tracking live push connections."""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional, Set

from .channel import DeliveryChannel
from .config import DisconnectReason, RealtimeConfig
from .exceptions import ConnectionLimitError

logger = logging.getLogger(__name__)

CloseCallback = Callable[["ConnectionRecord", DisconnectReason], None]

_DRAIN_REASONS = (DisconnectReason.REVOKED, DisconnectReason.CLAIMS_CHANGED)


@dataclass(frozen=True)
class ConnectionIdentity:
    """Validated identity a connection was opened under.

    Immutable for the connection's lifetime; a permission change is handled
    by revoking the connection so the client reconnects with fresh claims.
    """

    session_id: str
    user_id: str
    faculty_id: Optional[str] = None
    permissions: FrozenSet[str] = frozenset()
    is_admin: bool = False

    @classmethod
    def create(
        cls,
        session_id: str,
        user_id: str,
        faculty_id: Optional[str] = None,
        permissions: Iterable[str] = (),
        is_admin: bool = False,
    ) -> "ConnectionIdentity":
        return cls(
            session_id=session_id,
            user_id=user_id,
            faculty_id=faculty_id,
            permissions=frozenset(permissions),
            is_admin=is_admin,
        )


@dataclass
class ConnectionRecord:
    """Metadata and outbound channel for a single connection."""

    identity: ConnectionIdentity
    channel: DeliveryChannel
    connection_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    connected_at: float = field(default_factory=time.time)
    last_seen_at: float = field(default_factory=time.time)
    client_ip: Optional[str] = None
    user_agent: Optional[str] = None
    resume_from: Optional[str] = None

    @property
    def session_id(self) -> str:
        return self.identity.session_id

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    @property
    def faculty_id(self) -> Optional[str]:
        return self.identity.faculty_id

    @property
    def permissions(self) -> FrozenSet[str]:
        return self.identity.permissions


class ConnectionRegistry:
    """Thread-safe registry of live connections.

    A record is present exactly while its transport is open: removing it
    (deregistration, sweep, replacement) closes its delivery channel, and a
    failed write on the channel removes it.
    """

    def __init__(
        self,
        config: Optional[RealtimeConfig] = None,
        on_close: Optional[CloseCallback] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._config = config or RealtimeConfig()
        self._on_close = on_close
        self._clock = clock
        self._connections: Dict[str, ConnectionRecord] = {}
        self._user_connections: Dict[str, Set[str]] = {}
        self._session_connections: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def register(
        self,
        identity: ConnectionIdentity,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        resume_from: Optional[str] = None,
    ) -> ConnectionRecord:
        """Register a new connection for *identity*.

        Raises ConnectionLimitError if the per-user or global limit is reached.
        An existing connection for the same session is replaced first.
        """
        replaced: List[ConnectionRecord] = []
        try:
            with self._lock:
                if self._config.replace_existing_session:
                    for cid in list(self._session_connections.get(identity.session_id, ())):
                        replaced.append(self._remove_unlocked(cid))
                self._check_limits_unlocked(identity.user_id)

                now = self._clock()
                connection_id = str(uuid.uuid4())
                channel = DeliveryChannel(
                    connection_id,
                    capacity=self._config.channel_buffer_size,
                    backpressure_threshold=self._config.backpressure_threshold,
                    on_failure=self._on_write_failure,
                    clock=self._clock,
                )
                record = ConnectionRecord(
                    identity=identity,
                    channel=channel,
                    connection_id=connection_id,
                    connected_at=now,
                    last_seen_at=now,
                    client_ip=client_ip,
                    user_agent=user_agent,
                    resume_from=resume_from,
                )
                self._connections[connection_id] = record
                self._user_connections.setdefault(identity.user_id, set()).add(connection_id)
                self._session_connections.setdefault(identity.session_id, set()).add(connection_id)
        finally:
            for old in replaced:
                self._closed(old, DisconnectReason.REPLACED)

        logger.info(
            "Registered connection %s for user=%s session=%s faculty=%s",
            record.connection_id,
            identity.user_id,
            identity.session_id,
            identity.faculty_id,
            extra={"connection_id": record.connection_id},
        )
        return record

    def deregister(
        self,
        connection_id: str,
        reason: DisconnectReason = DisconnectReason.CLOSED,
    ) -> Optional[ConnectionRecord]:
        """Remove a connection and close its channel. Returns the record if found."""
        with self._lock:
            record = self._remove_unlocked(connection_id)
        if record is None:
            return None
        self._closed(record, reason)
        return record

    def deregister_user(
        self,
        user_id: str,
        reason: DisconnectReason = DisconnectReason.CLOSED,
    ) -> List[ConnectionRecord]:
        """Remove every connection of *user_id*."""
        with self._lock:
            ids = list(self._user_connections.get(user_id, ()))
            records = [self._remove_unlocked(cid) for cid in ids]
        for record in records:
            self._closed(record, reason)
        return records

    def touch(self, connection_id: str) -> bool:
        """Mark a connection as alive now."""
        with self._lock:
            record = self._connections.get(connection_id)
            if record is None:
                return False
            record.last_seen_at = self._clock()
            return True

    def snapshot(self) -> List[ConnectionRecord]:
        """Point-in-time copy of all records; safe to iterate without the lock."""
        with self._lock:
            return list(self._connections.values())

    def get_stale(
        self,
        now: Optional[float] = None,
        idle_threshold: Optional[float] = None,
    ) -> List[ConnectionRecord]:
        now = self._clock() if now is None else now
        threshold = self._idle_threshold(idle_threshold)
        return [r for r in self.snapshot() if now - r.last_seen_at > threshold]

    def sweep(
        self,
        now: Optional[float] = None,
        idle_threshold: Optional[float] = None,
    ) -> List[ConnectionRecord]:
        """Evict every connection idle for longer than *idle_threshold* seconds."""
        now = self._clock() if now is None else now
        threshold = self._idle_threshold(idle_threshold)
        with self._lock:
            stale_ids = [
                cid for cid, r in self._connections.items()
                if now - r.last_seen_at > threshold
            ]
            evicted = [self._remove_unlocked(cid) for cid in stale_ids]

        for record in evicted:
            self._closed(record, DisconnectReason.STALE)
        if evicted:
            logger.info("Swept %d stale connections (idle > %ss)", len(evicted), threshold)
        return evicted

    def close_all(self, reason: DisconnectReason = DisconnectReason.SHUTDOWN) -> int:
        with self._lock:
            records = [self._remove_unlocked(cid) for cid in list(self._connections)]
        for record in records:
            self._closed(record, reason)
        return len(records)

    def get(self, connection_id: str) -> Optional[ConnectionRecord]:
        with self._lock:
            return self._connections.get(connection_id)

    def get_by_session(self, session_id: str) -> List[ConnectionRecord]:
        with self._lock:
            ids = self._session_connections.get(session_id, set())
            return [self._connections[cid] for cid in ids]

    def get_user_connections(self, user_id: str) -> List[ConnectionRecord]:
        """Return all connections for a given user."""
        with self._lock:
            ids = self._user_connections.get(user_id, set())
            return [self._connections[cid] for cid in ids]

    def get_connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def get_user_count(self) -> int:
        with self._lock:
            return len(self._user_connections)

    def can_connect(self, user_id: str) -> bool:
        with self._lock:
            try:
                self._check_limits_unlocked(user_id)
            except ConnectionLimitError:
                return False
            return True

    def _idle_threshold(self, idle_threshold: Optional[float]) -> float:
        if idle_threshold is None:
            return float(self._config.connection_timeout_seconds)
        return idle_threshold

    def _check_limits_unlocked(self, user_id: str) -> None:
        """Internal limit check (caller must hold the lock)."""
        if len(self._connections) >= self._config.max_global_connections:
            raise ConnectionLimitError(user_id, self._config.max_global_connections, scope="global")
        user_conns = self._user_connections.get(user_id, set())
        if len(user_conns) >= self._config.max_connections_per_user:
            raise ConnectionLimitError(user_id, self._config.max_connections_per_user)

    def _remove_unlocked(self, connection_id: str) -> Optional[ConnectionRecord]:
        record = self._connections.pop(connection_id, None)
        if record is None:
            return None
        for index, key in (
            (self._user_connections, record.user_id),
            (self._session_connections, record.session_id),
        ):
            ids = index.get(key)
            if ids:
                ids.discard(connection_id)
                if not ids:
                    del index[key]
        return record

    def _closed(self, record: ConnectionRecord, reason: DisconnectReason) -> None:
        # Revocations and claim changes flush their notice frame before closing.
        record.channel.close(drain=reason in _DRAIN_REASONS)
        logger.info(
            "Deregistered connection %s for user=%s reason=%s",
            record.connection_id,
            record.user_id,
            reason.value,
            extra={"connection_id": record.connection_id},
        )
        if self._on_close is not None:
            try:
                self._on_close(record, reason)
            except Exception:
                logger.exception("Close callback failed for %s", record.connection_id)

    def _on_write_failure(self, connection_id: str, exc: BaseException) -> None:
        self.deregister(connection_id, DisconnectReason.WRITE_FAILED)
