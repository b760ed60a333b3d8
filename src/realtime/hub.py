"""Connection lifecycle and background maintenance for the push service."""

import asyncio
import logging
import time
from typing import AsyncIterator, Callable, List, Optional

from .codec import encode_event
from .config import DisconnectReason, RealtimeConfig
from .events import AnnouncementSeverity, Event, connection_status_event, heartbeat_event
from .fanout import FanoutEngine
from .registry import ConnectionIdentity, ConnectionRecord, ConnectionRegistry
from .throttle import HandshakeThrottle

logger = logging.getLogger(__name__)


class RealtimeHub:
    """Owns the registry and fanout engine and runs the sweep/heartbeat loops.

    Lives on ``app.state.hub`` for the API; collaborators publish through
    :meth:`publish`.
    """

    def __init__(
        self,
        config: Optional[RealtimeConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or RealtimeConfig()
        self._clock = clock
        self.registry = ConnectionRegistry(self.config, clock=clock)
        self.fanout = FanoutEngine(
            self.registry,
            clock=clock,
            default_ttl_seconds=self.config.default_ttl_seconds,
        )
        self.throttle = HandshakeThrottle(self.config.handshake_rate_per_minute, clock=clock)
        self._started_at = clock()
        self._overflow_alerted = False
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    @property
    def uptime_seconds(self) -> float:
        return max(self._clock() - self._started_at, 0.0)

    def now(self) -> float:
        return self._clock()

    def open_connection(
        self,
        identity: ConnectionIdentity,
        client_ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        last_event_id: Optional[str] = None,
    ) -> ConnectionRecord:
        """Admit a new connection and queue its welcome event.

        Raises HandshakeRateLimitedError or ConnectionLimitError.
        """
        self.throttle.check(identity.session_id)
        record = self.registry.register(
            identity,
            client_ip=client_ip,
            user_agent=user_agent,
            resume_from=last_event_id,
        )
        if last_event_id:
            logger.debug(
                "Connection %s resuming after %s (best effort, no replay)",
                record.connection_id,
                last_event_id,
            )
        record.channel.enqueue(connection_status_event(record.connection_id, identity.session_id))
        return record

    async def stream(self, record: ConnectionRecord) -> AsyncIterator[str]:
        """Encode the connection's queued events as SSE text until it closes."""
        reason = DisconnectReason.CLOSED
        try:
            async for event in record.channel.events():
                if event.is_expired(self._clock()):
                    logger.debug("Skipping expired event %s for %s", event.message_id, record.connection_id)
                    continue
                yield encode_event(event)
                self.registry.touch(record.connection_id)
        except Exception:
            reason = DisconnectReason.WRITE_FAILED
            logger.warning("Stream for connection %s failed", record.connection_id, exc_info=True)
            raise
        finally:
            self.registry.deregister(record.connection_id, reason)

    def publish(self, event: Event) -> int:
        """Entry point for collaborators producing domain events."""
        return self.fanout.dispatch(event)

    def send_heartbeat(self) -> int:
        event = heartbeat_event(
            connection_count=self.registry.get_connection_count(),
            uptime_seconds=self.uptime_seconds,
            ttl_seconds=self.config.heartbeat_ttl_seconds,
        )
        return self.fanout.dispatch(event)

    def sweep(self) -> List[ConnectionRecord]:
        """Evict stale connections and forget idle handshake buckets."""
        evicted = self.registry.sweep()
        self.throttle.prune()
        return evicted

    def check_overflow(self) -> bool:
        """Alert administrators once when the connection count passes the threshold.

        The alert re-arms when the count falls back under the threshold.
        Returns True when an alert was sent.
        """
        total = self.registry.get_connection_count()
        threshold = self.config.overflow_alert_threshold
        if total <= threshold:
            self._overflow_alerted = False
            return False
        if self._overflow_alerted:
            return False
        self._overflow_alerted = True
        logger.warning("Connection count %d exceeds alert threshold %d", total, threshold)
        self.fanout.send_admin_alert(
            "SSE Connection Overflow",
            f"Active connections ({total}) exceed the alert threshold ({threshold}).",
            AnnouncementSeverity.CRITICAL,
        )
        return True

    async def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._sweep_loop(), name="realtime-sweep"),
            asyncio.create_task(self._heartbeat_loop(), name="realtime-heartbeat"),
        ]
        logger.info(
            "Realtime hub started (heartbeat=%ss, sweep=%ss, idle timeout=%ss)",
            self.config.heartbeat_interval_seconds,
            self.config.sweep_interval_seconds,
            self.config.connection_timeout_seconds,
        )

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        closed = self.registry.close_all(DisconnectReason.SHUTDOWN)
        logger.info("Realtime hub stopped; closed %d connections", closed)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.sweep_interval_seconds)
            try:
                self.sweep()
            except Exception:
                logger.exception("Connection sweep failed")

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.heartbeat_interval_seconds)
            try:
                delivered = self.send_heartbeat()
                logger.debug("Heartbeat sent to %d connections", delivered)
                self.check_overflow()
            except Exception:
                logger.exception("Heartbeat dispatch failed")
