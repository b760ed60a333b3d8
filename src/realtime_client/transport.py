"""Push transports for the client engine."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from src.realtime.codec import SSEDecoder, SSEFrame

from .exceptions import HandshakeRejectedError, TransportError
from .identity import IdentityContext

logger = logging.getLogger(__name__)


@dataclass
class ConnectRequest:
    identity: IdentityContext
    last_event_id: Optional[str] = None


class TransportSink(Protocol):
    """Receives transport callbacks for one connection attempt."""

    def on_open(self) -> None: ...

    def on_frame(self, frame: SSEFrame) -> None: ...

    def on_error(self, exc: Exception) -> None: ...


class StreamHandle(Protocol):
    def close(self) -> None: ...


class Transport(Protocol):
    def connect(self, request: ConnectRequest, sink: TransportSink) -> StreamHandle: ...


class _TaskHandle:
    """Handle over the asyncio task reading one stream."""

    def __init__(self, task: "asyncio.Task[None]"):
        self._task = task

    def close(self) -> None:
        if not self._task.done():
            self._task.cancel()

    async def wait(self) -> None:
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class HTTPStreamTransport:
    """Reads an SSE stream over HTTP with httpx.

    The session id is sent as a bearer token and ``Last-Event-ID`` carries
    the resumption hint. 401/403 responses raise
    :class:`HandshakeRejectedError`; any other failure or a closed stream is
    reported as :class:`TransportError`.
    """

    def __init__(
        self,
        base_url: str,
        path_template: str = "/api/sse/{session_id}",
        client: Optional[httpx.AsyncClient] = None,
        connect_timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.path_template = path_template
        self._client = client
        self._connect_timeout = connect_timeout

    def connect(self, request: ConnectRequest, sink: TransportSink) -> _TaskHandle:
        task = asyncio.ensure_future(self._run(request, sink))
        return _TaskHandle(task)

    def _headers(self, request: ConnectRequest) -> dict:
        headers = {
            "Accept": "text/event-stream",
            "Cache-Control": "no-cache",
            "Authorization": f"Bearer {request.identity.session_id}",
        }
        if request.last_event_id:
            headers["Last-Event-ID"] = request.last_event_id
        return headers

    async def _run(self, request: ConnectRequest, sink: TransportSink) -> None:
        url = self.base_url + self.path_template.format(session_id=request.identity.session_id)
        owns_client = self._client is None
        client = self._client or httpx.AsyncClient(
            timeout=httpx.Timeout(self._connect_timeout, read=None)
        )
        try:
            async with client.stream("GET", url, headers=self._headers(request)) as response:
                if response.status_code in (401, 403):
                    body = await response.aread()
                    raise HandshakeRejectedError(response.status_code, body.decode(errors="replace")[:200])
                if response.status_code != 200:
                    raise HandshakeRejectedError(response.status_code)
                sink.on_open()
                decoder = SSEDecoder()
                async for line in response.aiter_lines():
                    frame = decoder.feed(line)
                    if frame is not None:
                        sink.on_frame(frame)
            raise TransportError("Stream closed by server")
        except TransportError as exc:
            logger.info("Stream %s ended: %s", url, exc)
            sink.on_error(exc)
        except httpx.HTTPError as exc:
            logger.info("Stream %s failed: %s", url, exc)
            sink.on_error(TransportError(str(exc) or exc.__class__.__name__))
        finally:
            if owns_client:
                await client.aclose()
