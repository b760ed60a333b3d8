"""Client resilience engine for the real-time push channel.

Keeps one logical subscription alive across transport failures: reconnects
with exponential backoff, treats a silent stream as dead after the heartbeat
timeout, drops duplicate deliveries, fans events out to typed and wildcard
listeners, and applies the mandated reactions (forced sign-out on session
revocation, identity refresh on permission changes).
"""

import asyncio
import inspect
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Set

from src.realtime.codec import SSEFrame, decode_event
from src.realtime.events import Event, EventType
from src.realtime.exceptions import MalformedEventError

from .backoff import ExponentialBackoff
from .config import ClientConfig, ClientState
from .dedup import DedupBuffer
from .exceptions import (
    HandshakeRejectedError,
    HeartbeatTimeoutError,
    ReconnectExhaustedError,
    TransportError,
)
from .identity import IdentityContext, IdentityProvider, LoggingNavigator, Navigator
from .inbox import NotificationInbox
from .reactions import REACTIONS, Reaction
from .scheduler import LoopScheduler, Scheduler, TimerHandle
from .transport import ConnectRequest, StreamHandle, Transport

logger = logging.getLogger(__name__)

EventListener = Callable[[Event], Any]
StateListener = Callable[[ClientState, ClientState], Any]
ErrorListener = Callable[[Exception], Any]


@dataclass
class ClientStatus:
    """Snapshot of the engine for diagnostics UIs."""

    state: ClientState
    attempts: int
    last_error: Optional[str]
    last_event_id: Optional[str]
    last_heartbeat_at: Optional[float]
    server_connection_count: Optional[int]
    events_received: int
    duplicates_dropped: int
    malformed_dropped: int
    heartbeat_timeouts: int


class _Sink:
    """Transport callbacks tagged with the connection attempt they belong to."""

    def __init__(self, client: "RealtimeClient", generation: int):
        self._client = client
        self._generation = generation

    def on_open(self) -> None:
        self._client._on_open(self._generation)

    def on_frame(self, frame: SSEFrame) -> None:
        self._client._on_frame(self._generation, frame)

    def on_error(self, exc: Exception) -> None:
        self._client._on_error(self._generation, exc)


class RealtimeClient:
    """Resilient subscriber to the push stream."""

    def __init__(
        self,
        transport: Transport,
        identity: IdentityProvider,
        config: Optional[ClientConfig] = None,
        scheduler: Optional[Scheduler] = None,
        navigator: Optional[Navigator] = None,
        inbox: Optional[NotificationInbox] = None,
    ):
        self.config = config or ClientConfig()
        self.inbox = inbox if inbox is not None else NotificationInbox(self.config.inbox_capacity)
        self._transport = transport
        self._identity = identity
        self._scheduler = scheduler or LoopScheduler()
        self._navigator = navigator or LoggingNavigator()

        self._state = ClientState.DISCONNECTED
        self._generation = 0
        self._stream: Optional[StreamHandle] = None
        self._manual_close = False
        self._heartbeat_timer: Optional[TimerHandle] = None
        self._reconnect_timer: Optional[TimerHandle] = None
        self._backoff = ExponentialBackoff(
            base=self.config.base_delay_seconds,
            maximum=self.config.max_delay_seconds,
            max_attempts=self.config.max_reconnect_attempts,
        )
        self._dedup = DedupBuffer(self.config.dedup_capacity)
        self._recent: Deque[Event] = deque(maxlen=self.config.recent_events_limit)
        self._pending: Set[asyncio.Future] = set()

        self._listeners: Dict[EventType, List[EventListener]] = {}
        self._wildcard: List[EventListener] = []
        self._state_listeners: List[StateListener] = []
        self._fatal_listeners: List[ErrorListener] = []

        self._last_error: Optional[Exception] = None
        self._last_event_id: Optional[str] = None
        self._last_heartbeat_at: Optional[float] = None
        self._server_connection_count: Optional[int] = None
        self._events_received = 0
        self._duplicates = 0
        self._malformed = 0
        self._heartbeat_timeouts = 0

    # ── Public API ───────────────────────────────────────────────────

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def last_error(self) -> Optional[Exception]:
        return self._last_error

    @property
    def recent_events(self) -> List[Event]:
        return list(self._recent)

    def connect(self) -> bool:
        """Open the stream for the current identity.

        Returns False when nobody is signed in. Calling it while already
        connecting or connected is a no-op.
        """
        if self._state in (ClientState.CONNECTING, ClientState.CONNECTED):
            return True
        identity = self._identity.current()
        if identity is None:
            logger.warning("Refusing to connect without an identity")
            return False
        self._manual_close = False
        self._cancel_reconnect_timer()
        self._backoff.reset()
        self._open(identity)
        return True

    def disconnect(self) -> None:
        """User-initiated close; no reconnect follows.

        Listener and refresh coroutines still pending are cancelled.
        """
        self._shut_down()
        pending, self._pending = self._pending, set()
        for task in pending:
            task.cancel()

    def _shut_down(self) -> None:
        self._manual_close = True
        self._cancel_reconnect_timer()
        self._invalidate()
        self._set_state(ClientState.DISCONNECTED)

    def on(self, event_type: EventType, listener: EventListener) -> Callable[[], None]:
        """Listen for one event type. Returns an unsubscribe callable."""
        listeners = self._listeners.setdefault(EventType(event_type), [])
        listeners.append(listener)
        return lambda: self._remove(listeners, listener)

    def on_any(self, listener: EventListener) -> Callable[[], None]:
        """Listen for every delivered event (heartbeats excluded)."""
        self._wildcard.append(listener)
        return lambda: self._remove(self._wildcard, listener)

    def on_state_change(self, listener: StateListener) -> Callable[[], None]:
        self._state_listeners.append(listener)
        return lambda: self._remove(self._state_listeners, listener)

    def on_fatal_error(self, listener: ErrorListener) -> Callable[[], None]:
        """Listen for errors meant for the end user."""
        self._fatal_listeners.append(listener)
        return lambda: self._remove(self._fatal_listeners, listener)

    def status(self) -> ClientStatus:
        return ClientStatus(
            state=self._state,
            attempts=self._backoff.attempts,
            last_error=str(self._last_error) if self._last_error else None,
            last_event_id=self._last_event_id,
            last_heartbeat_at=self._last_heartbeat_at,
            server_connection_count=self._server_connection_count,
            events_received=self._events_received,
            duplicates_dropped=self._duplicates,
            malformed_dropped=self._malformed,
            heartbeat_timeouts=self._heartbeat_timeouts,
        )

    # ── Connection lifecycle ─────────────────────────────────────────

    def _open(self, identity: IdentityContext) -> None:
        self._generation += 1
        generation = self._generation
        self._set_state(ClientState.CONNECTING)
        request = ConnectRequest(identity=identity, last_event_id=self._last_event_id)
        try:
            self._stream = self._transport.connect(request, _Sink(self, generation))
        except TransportError as exc:
            self._on_error(generation, exc)

    def _on_open(self, generation: int) -> None:
        if generation != self._generation or self._state != ClientState.CONNECTING:
            return
        self._backoff.reset()
        self._last_error = None
        self._set_state(ClientState.CONNECTED)
        self._arm_heartbeat_timer()
        logger.info("Real-time stream connected")

    def _on_frame(self, generation: int, frame: SSEFrame) -> None:
        if generation != self._generation:
            return
        try:
            event = decode_event(frame)
        except MalformedEventError as exc:
            self._malformed += 1
            logger.warning("Discarding malformed frame: %s", exc)
            return

        if frame.id:
            self._last_event_id = frame.id
        self._arm_heartbeat_timer()

        if event.event_type == EventType.HEARTBEAT:
            self._last_heartbeat_at = self._scheduler.now()
            count = event.payload.get("connection_count")
            if isinstance(count, int):
                self._server_connection_count = count
            return

        if self._dedup.check_and_add(event.message_id):
            self._duplicates += 1
            logger.debug("Dropping duplicate event %s", event.message_id)
            return

        self._events_received += 1
        self._recent.append(event)
        self.inbox.add_from_event(event)
        self._emit_event(event)
        self._react(event)

    def _on_error(self, generation: int, exc: Exception) -> None:
        if generation != self._generation:
            return
        if isinstance(exc, HandshakeRejectedError) and exc.is_auth_failure:
            logger.warning("Stream handshake rejected (%s); waiting for a new identity", exc)
            self._invalidate()
            self._last_error = exc
            self._set_state(ClientState.ERROR)
            return
        self._handle_failure(exc)

    def _handle_failure(self, exc: Exception) -> None:
        self._invalidate()
        self._last_error = exc
        if self._manual_close or not self.config.auto_reconnect:
            self._set_state(ClientState.DISCONNECTED)
            return
        if self._backoff.exhausted:
            fatal = ReconnectExhaustedError(self._backoff.attempts)
            self._last_error = fatal
            logger.error("Giving up after %d reconnect attempts: %s", self._backoff.attempts, exc)
            self._set_state(ClientState.ERROR)
            for listener in list(self._fatal_listeners):
                self._call(listener, fatal)
            return
        delay = self._backoff.next_delay()
        logger.info(
            "Stream lost (%s); reconnect attempt %d/%d in %.1fs",
            exc,
            self._backoff.attempts,
            self._backoff.max_attempts,
            delay,
        )
        self._set_state(ClientState.RECONNECTING)
        self._reconnect_timer = self._scheduler.call_later(delay, self._retry)

    def _retry(self) -> None:
        self._reconnect_timer = None
        if self._manual_close or self._state != ClientState.RECONNECTING:
            return
        identity = self._identity.current()
        if identity is None:
            self._set_state(ClientState.DISCONNECTED)
            return
        self._open(identity)

    def _invalidate(self) -> None:
        """Drop the current attempt so its late callbacks are ignored."""
        self._generation += 1
        self._cancel_heartbeat_timer()
        self._close_stream()

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.close()

    # ── Timers ───────────────────────────────────────────────────────

    def _arm_heartbeat_timer(self) -> None:
        self._cancel_heartbeat_timer()
        generation = self._generation
        self._heartbeat_timer = self._scheduler.call_later(
            self.config.heartbeat_timeout_seconds,
            lambda: self._on_heartbeat_timeout(generation),
        )

    def _on_heartbeat_timeout(self, generation: int) -> None:
        self._heartbeat_timer = None
        if generation != self._generation or self._state != ClientState.CONNECTED:
            return
        self._heartbeat_timeouts += 1
        logger.warning("No frame for %.0fs; treating stream as dead", self.config.heartbeat_timeout_seconds)
        self._handle_failure(HeartbeatTimeoutError(self.config.heartbeat_timeout_seconds))

    def _cancel_heartbeat_timer(self) -> None:
        timer, self._heartbeat_timer = self._heartbeat_timer, None
        if timer is not None:
            timer.cancel()

    def _cancel_reconnect_timer(self) -> None:
        timer, self._reconnect_timer = self._reconnect_timer, None
        if timer is not None:
            timer.cancel()

    # ── Dispatch ─────────────────────────────────────────────────────

    def _emit_event(self, event: Event) -> None:
        for listener in list(self._listeners.get(event.event_type, ())):
            self._call(listener, event)
        for listener in list(self._wildcard):
            self._call(listener, event)

    def _react(self, event: Event) -> None:
        reaction = REACTIONS[event.event_type]
        if reaction == Reaction.FORCE_SIGN_OUT:
            logger.warning("Session revoked by server: %s", event.payload.get("reason", "unknown"))
            self._shut_down()
            self._identity.sign_out()
            self._navigator.to_login("session_revoked")
        elif reaction == Reaction.REFRESH_IDENTITY:
            logger.info("Refreshing identity after %s", event.event_type.value)
            self._schedule(self._identity.refresh())

    def _set_state(self, state: ClientState) -> None:
        previous = self._state
        if previous == state:
            return
        self._state = state
        logger.debug("Client state %s -> %s", previous.value, state.value)
        for listener in list(self._state_listeners):
            self._call(listener, previous, state)

    def _call(self, listener: Callable[..., Any], *args: Any) -> None:
        try:
            self._schedule(listener(*args))
        except Exception:
            logger.exception("Listener %r failed", listener)

    def _schedule(self, result: Any) -> None:
        """Run an awaitable returned by a callback as a tracked task."""
        if not inspect.isawaitable(result):
            return
        task = asyncio.ensure_future(result)
        self._pending.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Future) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background callback failed: %s", exc, exc_info=exc)

    @staticmethod
    def _remove(listeners: list, listener: Any) -> None:
        if listener in listeners:
            listeners.remove(listener)


def bind_identity(client: RealtimeClient, provider: IdentityProvider) -> Callable[[], None]:
    """Connect when an identity appears or changes session; disconnect when it goes.

    Returns the unsubscribe callable for the identity listener.
    """
    last_session: Dict[str, Optional[str]] = {"id": None}
    current = provider.current()
    if current is not None:
        last_session["id"] = current.session_id

    def on_identity(identity: Optional[IdentityContext]) -> None:
        previous, last_session["id"] = last_session["id"], identity.session_id if identity else None
        if identity is None:
            client.disconnect()
        elif identity.session_id != previous:
            client.disconnect()
            client.connect()
        elif client.state == ClientState.DISCONNECTED:
            client.connect()

    return provider.subscribe(on_identity)
