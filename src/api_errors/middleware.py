"""Error Handling Middleware & Input Sanitization.

ASGI middleware that turns escaped exceptions into structured JSON errors,
plus the string sanitizer applied to user-supplied notification text.
"""

import html
import json
import logging
from typing import Any, Dict, Optional

from src.api_errors.config import DEFAULT_ERROR_CONFIG, ErrorConfig
from src.api_errors.exceptions import TrackivityAPIError
from src.api_errors.handlers import handle_api_error, handle_unhandled_error

logger = logging.getLogger(__name__)


def sanitize_string(value: str, max_length: int = 1000) -> str:
    """HTML-escape and truncate a string before it is broadcast."""
    if not isinstance(value, str):
        return str(value)[:max_length]
    sanitized = html.escape(value, quote=True)
    return sanitized[:max_length]


class ErrorHandlingMiddleware:
    """ASGI middleware that catches exceptions escaping the app.

    Errors raised after a streaming response has started cannot be turned
    into a JSON response; those are logged and re-raised.
    """

    def __init__(self, app: Any, config: Optional[ErrorConfig] = None):
        self.app = app
        self.config = config or DEFAULT_ERROR_CONFIG

    async def __call__(self, scope: Dict[str, Any], receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Dict[str, Any]) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except TrackivityAPIError as exc:
            if response_started:
                raise
            await self._send_error(send, handle_api_error(exc, self.config), exc.headers)
        except Exception as exc:
            if response_started:
                logger.exception("Error after response started on %s", scope.get("path", "unknown"))
                raise
            await self._send_error(send, handle_unhandled_error(exc, self.config))

    async def _send_error(
        self,
        send: Any,
        error_response: Any,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        body = json.dumps(error_response.to_dict()).encode("utf-8")
        response_headers = [
            [b"content-type", b"application/json"],
            [b"content-length", str(len(body)).encode()],
        ]
        if headers:
            for key, value in headers.items():
                response_headers.append([key.encode(), value.encode()])

        await send({
            "type": "http.response.start",
            "status": error_response.status_code,
            "headers": response_headers,
        })
        await send({
            "type": "http.response.body",
            "body": body,
        })
