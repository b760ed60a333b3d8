"""Tests for the client resilience engine."""

import asyncio
import json
import logging
from typing import Callable, List, Optional

import pytest

from conftest import FakeClock
from src.realtime.codec import SSEFrame
from src.realtime.config import MessagePriority
from src.realtime.events import (
    AnnouncementSeverity,
    Event,
    EventTarget,
    EventType,
    heartbeat_event,
    new_activity_event,
    notification,
    session_revoked_event,
    subscription_expiry_warning,
    system_announcement,
)
from src.realtime_client.backoff import ExponentialBackoff, backoff_delay
from src.realtime_client.config import ClientConfig, ClientState
from src.realtime_client.dedup import DedupBuffer
from src.realtime_client.engine import RealtimeClient, bind_identity
from src.realtime_client.exceptions import (
    HandshakeRejectedError,
    HeartbeatTimeoutError,
    ReconnectExhaustedError,
    TransportError,
)
from src.realtime_client.identity import (
    IdentityContext,
    InMemoryIdentityProvider,
    LoggingNavigator,
)
from src.realtime_client.inbox import NotificationInbox
from src.realtime_client.reactions import REACTIONS, Reaction


# ── Fakes ────────────────────────────────────────────────────────────


class _Timer:
    def __init__(self, when: float, callback: Callable[[], None]):
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler whose clock only moves when the test says so."""

    def __init__(self):
        self._now = 0.0
        self.timers: List[_Timer] = []
        self.delays: List[float] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> _Timer:
        timer = _Timer(self._now + delay, callback)
        self.timers.append(timer)
        self.delays.append(delay)
        return timer

    def advance(self, seconds: float) -> None:
        target = self._now + seconds
        while True:
            due = [t for t in self.timers if not t.cancelled and t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self.timers.remove(timer)
            self._now = timer.when
            timer.callback()
        self._now = target

    @property
    def pending(self) -> List[_Timer]:
        return [t for t in self.timers if not t.cancelled]


class FakeHandle:
    def __init__(self):
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakeTransport:
    """Records connection attempts; tests drive the sinks by hand."""

    def __init__(self, fail_with: Optional[Exception] = None):
        self.attempts = []
        self.fail_with = fail_with

    def connect(self, request, sink):
        handle = FakeHandle()
        self.attempts.append((request, sink, handle))
        if self.fail_with is not None:
            raise self.fail_with
        return handle

    @property
    def request(self):
        return self.attempts[-1][0]

    @property
    def sink(self):
        return self.attempts[-1][1]

    @property
    def handle(self):
        return self.attempts[-1][2]


def _frame(event: Event) -> SSEFrame:
    return SSEFrame(
        event=event.event_type.value,
        data=json.dumps(event.to_dict()),
        id=event.message_id,
    )


def _notification(message_id: Optional[str] = None) -> Event:
    event = Event(event_type=EventType.NOTIFICATION, payload={"title": "Hi"})
    if message_id:
        event.message_id = message_id
    return event


IDENTITY = IdentityContext.create(session_id="s1", user_id="alice", permissions=["activity.view"])


class _ClientTestBase:
    config_kwargs: dict = {}

    def setup_method(self):
        self.scheduler = ManualScheduler()
        self.transport = FakeTransport()
        self.provider = InMemoryIdentityProvider(IDENTITY)
        self.navigator = LoggingNavigator()
        self.client = RealtimeClient(
            self.transport,
            self.provider,
            ClientConfig(**self.config_kwargs),
            scheduler=self.scheduler,
            navigator=self.navigator,
        )
        self.events: List[Event] = []
        self.states = []
        self.fatal: List[Exception] = []
        self.client.on_any(self.events.append)
        self.client.on_state_change(lambda prev, new: self.states.append((prev, new)))
        self.client.on_fatal_error(self.fatal.append)

    def _connected(self):
        assert self.client.connect() is True
        self.transport.sink.on_open()
        assert self.client.state == ClientState.CONNECTED


# ── Building Blocks ──────────────────────────────────────────────────


class TestBuildingBlocks:
    """Backoff, dedup, config and the reactions table."""

    def test_backoff_delay_doubles_then_caps(self):
        delays = [backoff_delay(n, 1.0, 30.0) for n in range(8)]
        assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0, 30.0]

    def test_backoff_delay_huge_attempt(self):
        assert backoff_delay(10_000, 1.0, 30.0) == 30.0

    def test_backoff_delay_rejects_negative(self):
        with pytest.raises(ValueError):
            backoff_delay(-1, 1.0, 30.0)

    def test_exponential_backoff_budget(self):
        backoff = ExponentialBackoff(base=1.0, maximum=30.0, max_attempts=2)
        assert backoff.next_delay() == 1.0
        assert backoff.exhausted is False
        assert backoff.next_delay() == 2.0
        assert backoff.exhausted is True
        backoff.reset()
        assert backoff.attempts == 0

    def test_dedup_buffer_evicts_oldest(self):
        buffer = DedupBuffer(capacity=2)
        assert buffer.check_and_add("a") is False
        assert buffer.check_and_add("a") is True
        buffer.check_and_add("b")
        buffer.check_and_add("c")
        assert "a" not in buffer
        assert len(buffer) == 2
        assert buffer.check_and_add("a") is False

    def test_client_config_defaults(self):
        cfg = ClientConfig()
        assert cfg.base_delay_seconds == 1.0
        assert cfg.max_delay_seconds == 30.0
        assert cfg.max_reconnect_attempts == 10
        assert cfg.heartbeat_timeout_seconds == 90.0
        assert cfg.dedup_capacity == 100

    def test_client_config_rejects_short_timeout(self):
        with pytest.raises(ValueError):
            ClientConfig(heartbeat_interval_seconds=30, heartbeat_timeout_seconds=45)

    def test_client_config_from_env(self, monkeypatch):
        monkeypatch.setenv("TRACKIVITY_CLIENT_MAX_RECONNECT_ATTEMPTS", "4")
        monkeypatch.setenv("TRACKIVITY_CLIENT_AUTO_RECONNECT", "no")
        cfg = ClientConfig.from_env()
        assert cfg.max_reconnect_attempts == 4
        assert cfg.auto_reconnect is False

    def test_client_config_from_env_ignores_malformed(self, monkeypatch, caplog):
        monkeypatch.setenv("TRACKIVITY_CLIENT_MAX_RECONNECT_ATTEMPTS", "many")
        monkeypatch.setenv("TRACKIVITY_CLIENT_BASE_DELAY_SECONDS", "2.5")
        with caplog.at_level(logging.WARNING, logger="src.realtime_client.config"):
            cfg = ClientConfig.from_env()
        assert cfg.max_reconnect_attempts == 10
        assert cfg.base_delay_seconds == 2.5
        assert "TRACKIVITY_CLIENT_MAX_RECONNECT_ATTEMPTS" in caplog.text

    def test_reactions_cover_every_event_type(self):
        assert set(REACTIONS) == set(EventType)
        assert REACTIONS[EventType.SESSION_REVOKED] == Reaction.FORCE_SIGN_OUT
        assert REACTIONS[EventType.PERMISSION_UPDATED] == Reaction.REFRESH_IDENTITY
        assert REACTIONS[EventType.ADMIN_PROMOTED] == Reaction.REFRESH_IDENTITY
        assert REACTIONS[EventType.HEARTBEAT] == Reaction.LIVENESS

    def test_handshake_rejected_auth_flag(self):
        assert HandshakeRejectedError(401).is_auth_failure is True
        assert HandshakeRejectedError(403).is_auth_failure is True
        assert HandshakeRejectedError(503).is_auth_failure is False


# ── Connection Lifecycle ─────────────────────────────────────────────


class TestClientLifecycle(_ClientTestBase):
    """connect / disconnect and state transitions."""

    def test_connect_without_identity(self):
        self.provider.set(None)
        assert self.client.connect() is False
        assert self.client.state == ClientState.DISCONNECTED
        assert self.transport.attempts == []

    def test_connect_then_open(self):
        self.client.connect()
        assert self.client.state == ClientState.CONNECTING
        assert self.transport.request.identity == IDENTITY
        self.transport.sink.on_open()
        assert self.client.state == ClientState.CONNECTED
        assert self.states == [
            (ClientState.DISCONNECTED, ClientState.CONNECTING),
            (ClientState.CONNECTING, ClientState.CONNECTED),
        ]

    def test_connect_twice_is_noop(self):
        self._connected()
        self.client.connect()
        assert len(self.transport.attempts) == 1

    def test_disconnect_closes_stream_without_retry(self):
        self._connected()
        handle, sink = self.transport.handle, self.transport.sink
        self.client.disconnect()
        assert self.client.state == ClientState.DISCONNECTED
        assert handle.closed is True
        sink.on_frame(_frame(_notification()))
        sink.on_error(TransportError("late"))
        self.scheduler.advance(600)
        assert self.events == []
        assert len(self.transport.attempts) == 1

    def test_transport_connect_error_schedules_retry(self):
        transport = FakeTransport(fail_with=TransportError("refused"))
        client = RealtimeClient(transport, self.provider, scheduler=self.scheduler)
        client.connect()
        assert client.state == ClientState.RECONNECTING
        assert isinstance(client.last_error, TransportError)

    def test_status_snapshot(self):
        self._connected()
        self.transport.sink.on_frame(_frame(_notification("m1")))
        status = self.client.status()
        assert status.state == ClientState.CONNECTED
        assert status.events_received == 1
        assert status.last_event_id == "m1"
        assert status.attempts == 0


# ── Reconnect & Backoff ──────────────────────────────────────────────


class TestReconnect(_ClientTestBase):
    """Exponential backoff, reset and exhaustion."""

    config_kwargs = {"max_reconnect_attempts": 4}

    def _fail(self):
        self.transport.sink.on_error(TransportError("connection reset"))

    def test_delays_grow_exponentially(self):
        self.client.connect()
        for _ in range(4):
            self._fail()
            delay = self.scheduler.delays[-1]
            assert self.client.state == ClientState.RECONNECTING
            self.scheduler.advance(delay)
            assert self.client.state == ClientState.CONNECTING
        assert self.scheduler.delays == [1.0, 2.0, 4.0, 8.0]
        assert len(self.transport.attempts) == 5

    def test_retry_fires_only_after_delay(self):
        self.client.connect()
        self._fail()
        self.scheduler.advance(0.9)
        assert len(self.transport.attempts) == 1
        self.scheduler.advance(0.2)
        assert len(self.transport.attempts) == 2

    def test_successful_open_resets_backoff(self):
        self.client.connect()
        self._fail()
        self.scheduler.advance(1.0)
        self._fail()
        self.scheduler.advance(2.0)
        self.transport.sink.on_open()
        assert self.client.status().attempts == 0
        self._fail()
        assert self.scheduler.delays[-1] == 1.0

    def test_exhaustion_is_fatal(self):
        self.client.connect()
        for _ in range(4):
            self._fail()
            self.scheduler.advance(self.scheduler.delays[-1])
        self._fail()
        assert self.client.state == ClientState.ERROR
        assert len(self.fatal) == 1
        assert isinstance(self.fatal[0], ReconnectExhaustedError)
        assert str(self.fatal[0]) == ReconnectExhaustedError.USER_MESSAGE
        self.scheduler.advance(3600)
        assert len(self.transport.attempts) == 5

    def test_auth_failure_is_terminal(self):
        self.client.connect()
        self.transport.sink.on_error(HandshakeRejectedError(401, "expired"))
        assert self.client.state == ClientState.ERROR
        assert self.scheduler.pending == []
        assert self.fatal == []
        self.scheduler.advance(3600)
        assert len(self.transport.attempts) == 1

    def test_server_error_is_retried(self):
        self.client.connect()
        self.transport.sink.on_error(HandshakeRejectedError(503))
        assert self.client.state == ClientState.RECONNECTING

    def test_auto_reconnect_disabled(self):
        client = RealtimeClient(
            self.transport,
            self.provider,
            ClientConfig(auto_reconnect=False),
            scheduler=self.scheduler,
        )
        client.connect()
        self.transport.sink.on_error(TransportError("gone"))
        assert client.state == ClientState.DISCONNECTED
        assert self.scheduler.pending == []

    def test_retry_without_identity_stops(self):
        self.client.connect()
        self._fail()
        self.provider.set(None)
        self.scheduler.advance(1.0)
        assert self.client.state == ClientState.DISCONNECTED
        assert len(self.transport.attempts) == 1

    def test_resume_hint_sent_on_reconnect(self):
        self._connected()
        self.transport.sink.on_frame(_frame(_notification("m-42")))
        self._fail()
        self.scheduler.advance(1.0)
        assert self.transport.request.last_event_id == "m-42"

    def test_stale_attempt_callbacks_ignored(self):
        self.client.connect()
        old_sink = self.transport.sink
        old_sink.on_error(TransportError("first failure"))
        self.scheduler.advance(1.0)
        new_sink = self.transport.sink
        assert new_sink is not old_sink

        old_sink.on_open()
        assert self.client.state == ClientState.CONNECTING
        old_sink.on_frame(_frame(_notification()))
        old_sink.on_error(TransportError("late failure"))
        assert self.events == []
        assert self.client.state == ClientState.CONNECTING

        new_sink.on_open()
        assert self.client.state == ClientState.CONNECTED

    def test_failed_attempt_closes_its_stream(self):
        self.client.connect()
        handle = self.transport.handle
        self._fail()
        assert handle.closed is True


# ── Heartbeat Liveness ───────────────────────────────────────────────


class TestHeartbeatTimeout(_ClientTestBase):
    """A silent stream is declared dead after the timeout."""

    config_kwargs = {"base_delay_seconds": 5.0}

    def test_no_frames_for_timeout_triggers_reconnect(self):
        self._connected()
        self.scheduler.advance(89)
        assert self.client.state == ClientState.CONNECTED
        self.scheduler.advance(2)
        assert self.client.state == ClientState.RECONNECTING
        assert isinstance(self.client.last_error, HeartbeatTimeoutError)
        assert self.client.status().heartbeat_timeouts == 1
        assert self.transport.handle.closed is True

    def test_silence_after_heartbeat_triggers_reconnect(self):
        self._connected()
        self.transport.sink.on_frame(_frame(heartbeat_event(3, 100.0)))
        self.scheduler.advance(89)
        assert self.client.state == ClientState.CONNECTED
        self.scheduler.advance(2)
        assert self.client.state == ClientState.RECONNECTING
        assert isinstance(self.client.last_error, HeartbeatTimeoutError)

    def test_heartbeats_keep_stream_alive(self):
        self._connected()
        for _ in range(10):
            self.scheduler.advance(30)
            self.transport.sink.on_frame(_frame(heartbeat_event(3, 100.0)))
        assert self.client.state == ClientState.CONNECTED

    def test_any_frame_rearms_timer(self):
        self._connected()
        self.scheduler.advance(60)
        self.transport.sink.on_frame(_frame(_notification()))
        self.scheduler.advance(89)
        assert self.client.state == ClientState.CONNECTED
        self.scheduler.advance(2)
        assert self.client.state == ClientState.RECONNECTING

    def test_heartbeat_not_delivered_to_listeners(self):
        self._connected()
        self.transport.sink.on_frame(_frame(heartbeat_event(7, 1.0)))
        assert self.events == []
        status = self.client.status()
        assert status.server_connection_count == 7
        assert status.last_heartbeat_at == self.scheduler.now()

    def test_reconnect_after_timeout_uses_backoff(self):
        self._connected()
        self.scheduler.advance(91)
        self.scheduler.advance(5)
        assert self.client.state == ClientState.CONNECTING
        assert len(self.transport.attempts) == 2


# ── Event Delivery ───────────────────────────────────────────────────


class TestEventDelivery(_ClientTestBase):
    """Dedup, listeners and malformed input."""

    def test_event_delivered_to_typed_and_wildcard(self):
        typed = []
        self.client.on(EventType.NOTIFICATION, typed.append)
        self._connected()
        self.transport.sink.on_frame(_frame(_notification("m1")))
        assert [e.message_id for e in typed] == ["m1"]
        assert [e.message_id for e in self.events] == ["m1"]

    def test_typed_listener_ignores_other_types(self):
        typed = []
        self.client.on(EventType.RECORD_CHANGED, typed.append)
        self._connected()
        self.transport.sink.on_frame(_frame(_notification()))
        assert typed == []

    def test_duplicate_delivered_once(self):
        self._connected()
        frame = _frame(_notification("dup"))
        self.transport.sink.on_frame(frame)
        self.transport.sink.on_frame(frame)
        assert len(self.events) == 1
        assert self.client.status().duplicates_dropped == 1

    def test_duplicate_across_reconnect(self):
        self._connected()
        self.transport.sink.on_frame(_frame(_notification("dup")))
        self.transport.sink.on_error(TransportError("reset"))
        self.scheduler.advance(1.0)
        self.transport.sink.on_open()
        self.transport.sink.on_frame(_frame(_notification("dup")))
        assert len(self.events) == 1

    def test_malformed_frame_discarded(self):
        self._connected()
        self.transport.sink.on_frame(SSEFrame(event="notification", data="{broken"))
        self.transport.sink.on_frame(SSEFrame(data=json.dumps({"event_type": "notification"})))
        assert self.events == []
        assert self.client.state == ClientState.CONNECTED
        assert self.client.status().malformed_dropped == 2

    def test_listener_failure_does_not_stop_others(self):
        def boom(event):
            raise RuntimeError("listener bug")

        self.client.on(EventType.NOTIFICATION, boom)
        self._connected()
        self.transport.sink.on_frame(_frame(_notification()))
        assert len(self.events) == 1

    def test_unsubscribe(self):
        typed = []
        unsubscribe = self.client.on(EventType.NOTIFICATION, typed.append)
        unsubscribe()
        self._connected()
        self.transport.sink.on_frame(_frame(_notification()))
        assert typed == []

    def test_recent_events_bounded(self):
        client = RealtimeClient(
            self.transport,
            self.provider,
            ClientConfig(recent_events_limit=3),
            scheduler=self.scheduler,
        )
        client.connect()
        self.transport.sink.on_open()
        for i in range(5):
            self.transport.sink.on_frame(_frame(_notification(f"m{i}")))
        assert [e.message_id for e in client.recent_events] == ["m2", "m3", "m4"]

    def test_priority_survives_decode(self):
        self._connected()
        event = _notification()
        event.priority = MessagePriority.HIGH
        self.transport.sink.on_frame(_frame(event))
        assert self.events[0].priority == MessagePriority.HIGH


# ── Mandated Reactions ───────────────────────────────────────────────


class TestReactions(_ClientTestBase):
    """Forced sign-out and identity refresh."""

    def test_session_revoked_signs_out(self):
        self._connected()
        handle = self.transport.handle
        self.transport.sink.on_frame(_frame(session_revoked_event("s1", "alice", reason="security")))
        assert self.client.state == ClientState.DISCONNECTED
        assert handle.closed is True
        assert self.provider.sign_out_count == 1
        assert self.provider.current() is None
        assert self.navigator.redirects == ["/login?message=session_revoked"]

    def test_session_revoked_does_not_reconnect(self):
        self._connected()
        self.transport.sink.on_frame(_frame(session_revoked_event("s1", "alice", reason="security")))
        self.scheduler.advance(3600)
        assert len(self.transport.attempts) == 1

    def test_session_revoked_reaches_listeners_first(self):
        revoked = []
        self.client.on(EventType.SESSION_REVOKED, lambda e: revoked.append(self.provider.current()))
        self._connected()
        self.transport.sink.on_frame(_frame(session_revoked_event("s1", "alice", reason="security")))
        assert revoked == [IDENTITY]

    def test_permission_updated_refreshes_identity(self):
        updated = IdentityContext.create(session_id="s1", user_id="alice", permissions=["activity.manage"])
        provider = InMemoryIdentityProvider(IDENTITY, loader=lambda current: updated)
        client = RealtimeClient(self.transport, provider, scheduler=self.scheduler)
        client.connect()
        self.transport.sink.on_open()
        event = Event(
            event_type=EventType.PERMISSION_UPDATED,
            payload={"user_id": "alice", "new_permissions": ["activity.manage"]},
            priority=MessagePriority.HIGH,
        )
        self.transport.sink.on_frame(_frame(event))
        assert provider.refresh_count == 1
        assert provider.current() == updated
        assert client.state == ClientState.CONNECTED

    def test_admin_promoted_refreshes_identity(self):
        self._connected()
        self.transport.sink.on_frame(_frame(Event(event_type=EventType.ADMIN_PROMOTED)))
        assert self.provider.refresh_count == 1

    def test_plain_events_have_no_side_effects(self):
        self._connected()
        self.transport.sink.on_frame(_frame(Event(event_type=EventType.SYSTEM_ANNOUNCEMENT)))
        assert self.provider.refresh_count == 0
        assert self.provider.sign_out_count == 0


# ── Identity Binding ─────────────────────────────────────────────────


class TestBindIdentity(_ClientTestBase):
    """Following the identity provider."""

    def test_new_session_reconnects(self):
        bind_identity(self.client, self.provider)
        self._connected()
        first_handle = self.transport.handle
        self.provider.set(IdentityContext.create(session_id="s2", user_id="alice"))
        assert first_handle.closed is True
        assert self.client.state == ClientState.CONNECTING
        assert self.transport.request.identity.session_id == "s2"

    def test_sign_out_disconnects(self):
        bind_identity(self.client, self.provider)
        self._connected()
        self.provider.sign_out()
        assert self.client.state == ClientState.DISCONNECTED

    def test_sign_in_connects(self):
        self.provider.set(None)
        bind_identity(self.client, self.provider)
        self.provider.set(IDENTITY)
        assert self.client.state == ClientState.CONNECTING

    def test_same_session_keeps_connection(self):
        bind_identity(self.client, self.provider)
        self._connected()
        self.provider.set(IdentityContext.create(session_id="s1", user_id="alice", permissions=["x"]))
        assert self.client.state == ClientState.CONNECTED
        assert len(self.transport.attempts) == 1

    def test_revocation_with_binding(self):
        bind_identity(self.client, self.provider)
        self._connected()
        self.transport.sink.on_frame(_frame(session_revoked_event("s1", "alice", reason="security")))
        assert self.client.state == ClientState.DISCONNECTED
        assert self.provider.current() is None
        assert len(self.transport.attempts) == 1

    def test_unbind(self):
        unbind = bind_identity(self.client, self.provider)
        unbind()
        self.provider.set(IdentityContext.create(session_id="s9", user_id="alice"))
        assert self.transport.attempts == []


# ── Background Callbacks ─────────────────────────────────────────────


class TestBackgroundCallbacks(_ClientTestBase):
    """Coroutines returned by listeners and refresh are tracked tasks."""

    @pytest.mark.asyncio
    async def test_failed_async_refresh_is_logged(self, caplog):
        async def refresh():
            raise RuntimeError("claims service down")

        self.provider.refresh = refresh
        self._connected()
        with caplog.at_level(logging.ERROR, logger="src.realtime_client.engine"):
            self.transport.sink.on_frame(_frame(Event(event_type=EventType.PERMISSION_UPDATED)))
            assert len(self.client._pending) == 1
            await asyncio.gather(*self.client._pending, return_exceptions=True)
            await asyncio.sleep(0)
        assert self.client._pending == set()
        errors = [r for r in caplog.records if r.name == "src.realtime_client.engine"]
        assert errors and errors[0].levelno == logging.ERROR
        assert "claims service down" in caplog.text

    @pytest.mark.asyncio
    async def test_async_listener_runs(self):
        seen = []

        async def listener(event):
            seen.append(event.message_id)

        self.client.on(EventType.NOTIFICATION, listener)
        self._connected()
        self.transport.sink.on_frame(_frame(_notification("m1")))
        await asyncio.gather(*self.client._pending)
        assert seen == ["m1"]

    @pytest.mark.asyncio
    async def test_disconnect_cancels_pending(self):
        async def slow(event):
            await asyncio.sleep(3600)

        self.client.on(EventType.NOTIFICATION, slow)
        self._connected()
        self.transport.sink.on_frame(_frame(_notification()))
        task = next(iter(self.client._pending))
        self.client.disconnect()
        assert self.client._pending == set()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_revocation_lets_listener_tasks_finish(self):
        seen = []

        async def on_revoked(event):
            seen.append(event.payload["reason"])

        self.client.on(EventType.SESSION_REVOKED, on_revoked)
        self._connected()
        self.transport.sink.on_frame(_frame(session_revoked_event("s1", "alice", reason="security")))
        await asyncio.gather(*self.client._pending)
        assert seen == ["security"]
        assert self.client.state == ClientState.DISCONNECTED


# ── Notification Inbox ───────────────────────────────────────────────


def _check_in() -> Event:
    return Event(
        event_type=EventType.ACTIVITY_CHECKED_IN,
        payload={"activity_id": "a1", "activity_name": "Orientation", "user_id": "u1", "user_name": "Alice"},
    )


class TestNotificationInbox:
    """Newest-first entries with expiry and read state."""

    def setup_method(self):
        self.clock = FakeClock()
        self.inbox = NotificationInbox(capacity=3, clock=self.clock)

    def _notify(self, title: str) -> Event:
        return notification(title, "body", target=EventTarget.broadcast())

    def test_newest_first_and_bounded(self):
        for title in ("a", "b", "c", "d"):
            self.inbox.add_from_event(self._notify(title))
        assert [item.title for item in self.inbox.items()] == ["d", "c", "b"]

    def test_rejects_bad_capacity(self):
        with pytest.raises(ValueError):
            NotificationInbox(capacity=0)

    def test_ignores_non_user_facing_events(self):
        assert self.inbox.add_from_event(heartbeat_event(1, 1.0)) is None
        assert self.inbox.add_from_event(Event(event_type=EventType.RECORD_CHANGED)) is None
        assert len(self.inbox) == 0

    @pytest.mark.parametrize("severity, kind", [
        (AnnouncementSeverity.CRITICAL, "error"),
        (AnnouncementSeverity.IMPORTANT, "warning"),
        (AnnouncementSeverity.INFO, "info"),
    ])
    def test_announcement_type_follows_severity(self, severity, kind):
        item = self.inbox.add_from_event(system_announcement("Down", "Tonight", severity=severity))
        assert item.notification_type == kind

    def test_check_in_expires_after_an_hour(self):
        item = self.inbox.add_from_event(_check_in())
        assert item.notification_type == "success"
        assert "Alice" in item.message
        self.clock.advance(3599)
        assert self.inbox.unread_count() == 1
        self.clock.advance(2)
        assert self.inbox.unread_count() == 0
        assert self.inbox.items() == []

    def test_new_activity_lasts_a_day(self):
        self.inbox.add_from_event(new_activity_event("act-1", "Lab tour"))
        self.clock.advance(23 * 3600)
        assert [item.message for item in self.inbox.items()] == ["Lab tour"]
        self.clock.advance(3600)
        assert self.inbox.items() == []

    def test_subscription_expiry_entry(self):
        event = subscription_expiry_warning(
            "u1", "premium", expires_at=self.clock.now + 100, days_remaining=1,
            renewal_url="/renew",
        )
        item = self.inbox.add_from_event(event)
        assert item.notification_type == "warning"
        assert item.action_url == "/renew"
        assert item.expires_at == self.clock.now + 100

    def test_mark_as_read(self):
        event = self._notify("a")
        self.inbox.add_from_event(event)
        self.inbox.add_from_event(self._notify("b"))
        assert self.inbox.unread_count() == 2
        assert self.inbox.mark_as_read(event.message_id) is True
        assert self.inbox.unread_count() == 1
        assert len(self.inbox) == 2
        assert self.inbox.mark_as_read("unknown") is False

    def test_mark_as_read_removes_expired(self):
        event = _check_in()
        self.inbox.add_from_event(event)
        self.clock.advance(3601)
        assert self.inbox.mark_as_read(event.message_id) is True
        assert len(self.inbox) == 0

    def test_mark_all_read(self):
        self.inbox.add_from_event(self._notify("a"))
        self.inbox.add_from_event(self._notify("b"))
        assert self.inbox.mark_all_read() == 2
        assert self.inbox.unread_count() == 0

    def test_remove_and_clear(self):
        first = self._notify("a")
        self.inbox.add_from_event(first)
        self.inbox.add_from_event(self._notify("b"))
        assert self.inbox.remove(first.message_id) is True
        assert self.inbox.remove(first.message_id) is False
        assert [item.title for item in self.inbox.items()] == ["b"]
        self.inbox.clear()
        assert len(self.inbox) == 0

    def test_prune(self):
        self.inbox.add_from_event(_check_in())
        self.inbox.add_from_event(self._notify("stays"))
        self.clock.advance(3601)
        assert self.inbox.prune() == 1
        assert [item.title for item in self.inbox.items()] == ["stays"]


class TestInboxFeed(_ClientTestBase):
    """The engine records user-facing events in its inbox."""

    config_kwargs = {"inbox_capacity": 10}

    def test_notifications_reach_inbox(self):
        self._connected()
        self.transport.sink.on_frame(_frame(_notification("m1")))
        self.transport.sink.on_frame(_frame(system_announcement("Down", "Tonight")))
        items = self.client.inbox.items()
        assert [item.event_type for item in items] == [
            EventType.SYSTEM_ANNOUNCEMENT,
            EventType.NOTIFICATION,
        ]
        assert self.client.inbox.unread_count() == 2

    def test_duplicates_and_heartbeats_skipped(self):
        self._connected()
        frame = _frame(_notification("dup"))
        self.transport.sink.on_frame(frame)
        self.transport.sink.on_frame(frame)
        self.transport.sink.on_frame(_frame(heartbeat_event(1, 1.0)))
        assert len(self.client.inbox) == 1

    def test_injected_inbox_is_used(self):
        inbox = NotificationInbox(capacity=5)
        client = RealtimeClient(self.transport, self.provider, scheduler=self.scheduler, inbox=inbox)
        assert client.inbox is inbox
