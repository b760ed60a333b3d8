"""Tests for the httpx SSE transport."""

import httpx
import pytest

from src.realtime.codec import decode_event, encode_event
from src.realtime.events import EventTarget, notification
from src.realtime_client.exceptions import HandshakeRejectedError, TransportError
from src.realtime_client.identity import IdentityContext
from src.realtime_client.transport import ConnectRequest, HTTPStreamTransport


class RecordingSink:
    def __init__(self):
        self.opened = 0
        self.frames = []
        self.errors = []

    def on_open(self):
        self.opened += 1

    def on_frame(self, frame):
        self.frames.append(frame)

    def on_error(self, exc):
        self.errors.append(exc)


IDENTITY = IdentityContext.create(session_id="sess-1", user_id="alice")


class TestHTTPStreamTransport:
    """Reading SSE over httpx with a mock transport."""

    def setup_method(self):
        self.requests = []
        self.sink = RecordingSink()

    def _client(self, handler) -> httpx.AsyncClient:
        def recording(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        return httpx.AsyncClient(transport=httpx.MockTransport(recording))

    @pytest.mark.asyncio
    async def test_streams_frames_then_reports_close(self):
        event = notification("Hi", "Hello", target=EventTarget.for_user("alice"))
        body = ": keep-alive\n\n" + encode_event(event)

        async with self._client(lambda r: httpx.Response(200, text=body)) as client:
            transport = HTTPStreamTransport("http://test", client=client)
            handle = transport.connect(ConnectRequest(IDENTITY), self.sink)
            await handle.wait()

        assert self.sink.opened == 1
        assert len(self.sink.frames) == 1
        assert decode_event(self.sink.frames[0]).message_id == event.message_id
        assert len(self.sink.errors) == 1
        assert isinstance(self.sink.errors[0], TransportError)
        assert not isinstance(self.sink.errors[0], HandshakeRejectedError)

    @pytest.mark.asyncio
    async def test_request_headers(self):
        async with self._client(lambda r: httpx.Response(200, text="")) as client:
            transport = HTTPStreamTransport("http://test/", client=client)
            handle = transport.connect(ConnectRequest(IDENTITY, last_event_id="evt_9"), self.sink)
            await handle.wait()

        request = self.requests[0]
        assert request.url.path == "/api/sse/sess-1"
        assert request.headers["authorization"] == "Bearer sess-1"
        assert request.headers["accept"] == "text/event-stream"
        assert request.headers["last-event-id"] == "evt_9"

    @pytest.mark.asyncio
    async def test_no_resume_header_without_hint(self):
        async with self._client(lambda r: httpx.Response(200, text="")) as client:
            handle = HTTPStreamTransport("http://test", client=client).connect(
                ConnectRequest(IDENTITY), self.sink
            )
            await handle.wait()
        assert "last-event-id" not in self.requests[0].headers

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_rejection(self, status):
        response = httpx.Response(status, json={"error": {"code": "INVALID_SESSION"}})
        async with self._client(lambda r: response) as client:
            handle = HTTPStreamTransport("http://test", client=client).connect(
                ConnectRequest(IDENTITY), self.sink
            )
            await handle.wait()

        assert self.sink.opened == 0
        error = self.sink.errors[0]
        assert isinstance(error, HandshakeRejectedError)
        assert error.status_code == status
        assert error.is_auth_failure is True
        assert "INVALID_SESSION" in error.detail

    @pytest.mark.asyncio
    async def test_server_error_is_not_auth_failure(self):
        async with self._client(lambda r: httpx.Response(503)) as client:
            handle = HTTPStreamTransport("http://test", client=client).connect(
                ConnectRequest(IDENTITY), self.sink
            )
            await handle.wait()
        assert self.sink.errors[0].status_code == 503
        assert self.sink.errors[0].is_auth_failure is False

    @pytest.mark.asyncio
    async def test_network_error_wrapped(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with self._client(refuse) as client:
            handle = HTTPStreamTransport("http://test", client=client).connect(
                ConnectRequest(IDENTITY), self.sink
            )
            await handle.wait()

        assert self.sink.opened == 0
        assert isinstance(self.sink.errors[0], TransportError)
        assert "connection refused" in str(self.sink.errors[0])

    @pytest.mark.asyncio
    async def test_close_cancels_reader(self):
        async with self._client(lambda r: httpx.Response(200, text="")) as client:
            handle = HTTPStreamTransport("http://test", client=client).connect(
                ConnectRequest(IDENTITY), self.sink
            )
            handle.close()
            await handle.wait()
        assert self.sink.opened == 0
        assert self.sink.errors == []
