"""ASGI Request Tracing Middleware.

Injects request IDs, logs the request lifecycle, and propagates tracing
headers. Responses that turn out to be event streams are logged when they
open and when they close, and never count as slow requests.
"""

import logging
import time
from typing import Optional

from src.logging_config.config import DEFAULT_LOGGING_CONFIG, LoggingConfig
from src.logging_config.context import RequestContext, generate_request_id

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
CORRELATION_ID_HEADER = "X-Correlation-ID"


class RequestTracingMiddleware:
    """Generate or propagate X-Request-ID and bind it to all logs.

    Usage:
        app.add_middleware(RequestTracingMiddleware)
    """

    def __init__(self, app, config: Optional[LoggingConfig] = None):
        self.app = app
        self.config = config or DEFAULT_LOGGING_CONFIG

    async def __call__(self, scope, receive, send):
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        request_id = self._get_header(headers, REQUEST_ID_HEADER) or generate_request_id()
        correlation_id = self._get_header(headers, CORRELATION_ID_HEADER) or request_id

        method = scope.get("method", "")
        path = scope.get("path", "")
        should_log = path not in self.config.exclude_paths
        start_time = time.perf_counter()

        with RequestContext(request_id=request_id, correlation_id=correlation_id):
            if should_log:
                logger.info("Request started", extra={"method": method, "path": path})

            status_code = 500
            is_stream = False

            async def send_wrapper(message):
                nonlocal status_code, is_stream
                if message["type"] == "http.response.start":
                    status_code = message.get("status", 500)
                    response_headers = list(message.get("headers", []))
                    is_stream = self._is_stream(response_headers)
                    if is_stream and should_log:
                        logger.info("Stream opened", extra={"method": method, "path": path})
                    response_headers.append(
                        (REQUEST_ID_HEADER.lower().encode(), request_id.encode())
                    )
                    response_headers.append(
                        (CORRELATION_ID_HEADER.lower().encode(), correlation_id.encode())
                    )
                    message = {**message, "headers": response_headers}
                await send(message)

            try:
                await self.app(scope, receive, send_wrapper)
            except Exception:
                status_code = 500
                raise
            finally:
                duration_ms = (time.perf_counter() - start_time) * 1000
                if should_log:
                    if status_code >= 400:
                        level = logging.WARNING
                    elif not is_stream and duration_ms > self.config.slow_threshold_ms:
                        level = logging.WARNING
                    else:
                        level = logging.INFO
                    logger.log(
                        level,
                        "Stream closed" if is_stream else "Request completed",
                        extra={
                            "method": method,
                            "path": path,
                            "status_code": status_code,
                            "duration_ms": round(duration_ms, 2),
                        },
                    )

    @staticmethod
    def _get_header(headers: dict, name: str) -> Optional[str]:
        value = headers.get(name.lower().encode())
        if value:
            return value.decode("utf-8", errors="replace")
        return None

    def _is_stream(self, headers: list) -> bool:
        for key, value in headers:
            if key.lower() == b"content-type":
                return value.decode("latin-1").startswith(self.config.stream_content_type)
        return False
