"""FastAPI Application Factory.

Creates the realtime API with its middleware stack (security headers,
request tracing, error handling, CORS) and attaches the hub, admin console
and session store to ``app.state``.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from src.api.auth import SessionStore
from src.api.config import APIConfig, DEFAULT_API_CONFIG
from src.api.models import HealthResponse
from src.api.routes import admin as admin_routes
from src.api.routes import publish as publish_routes
from src.api.routes import stream as stream_routes
from src.api_errors import ErrorHandlingMiddleware, register_exception_handlers
from src.logging_config import LoggingConfig, configure_logging
from src.logging_config.middleware import RequestTracingMiddleware
from src.realtime.admin import AdminConsole
from src.realtime.config import RealtimeConfig
from src.realtime.hub import RealtimeHub

logger = logging.getLogger(__name__)


# ── Security Headers Middleware ───────────────────────────────────────


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to all HTTP responses."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        if os.environ.get("TRACKIVITY_ENABLE_HSTS", "").lower() == "true":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response


# ── Lifespan (startup / shutdown) ────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and run the hub's background loops."""
    configure_logging(app.state.logging_config)
    hub: RealtimeHub = app.state.hub
    await hub.start()
    logger.info("Trackivity realtime API starting up")
    yield
    await hub.stop()
    logger.info("Trackivity realtime API shutting down")


# ── App Factory ──────────────────────────────────────────────────────


def create_app(
    config: Optional[APIConfig] = None,
    realtime_config: Optional[RealtimeConfig] = None,
    sessions: Optional[SessionStore] = None,
    hub: Optional[RealtimeHub] = None,
    logging_config: Optional[LoggingConfig] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Middleware stack (outermost to innermost):
        SecurityHeaders -> RequestTracing -> ErrorHandling -> CORS -> App
    """
    config = config or DEFAULT_API_CONFIG

    app = FastAPI(
        title=config.title,
        version=config.version,
        description=config.description,
        docs_url=config.docs_url,
        lifespan=lifespan,
    )

    app.state.api_config = config
    app.state.logging_config = logging_config
    app.state.hub = hub or RealtimeHub(realtime_config or RealtimeConfig.from_env())
    app.state.admin = AdminConsole(app.state.hub)
    app.state.sessions = sessions or SessionStore(config)

    register_exception_handlers(app)

    # add_middleware prepends, so order here is innermost-first.
    cors_origins = os.environ.get("TRACKIVITY_CORS_ORIGINS", "").split(",")
    cors_origins = [o.strip() for o in cors_origins if o.strip()] or config.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=config.cors_methods,
        allow_headers=config.cors_headers,
    )
    app.add_middleware(ErrorHandlingMiddleware)
    app.add_middleware(RequestTracingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    @app.get("/health", response_model=HealthResponse)
    async def health():
        hub_: RealtimeHub = app.state.hub
        return HealthResponse(
            status="ok",
            version=config.version,
            connections=hub_.registry.get_connection_count(),
            hub_running=hub_.running,
        )

    # Admin routes first: /sse/admin/stats must not be taken as a session id.
    app.include_router(admin_routes.router, prefix=config.prefix)
    app.include_router(publish_routes.router, prefix=config.prefix)
    app.include_router(stream_routes.router, prefix=config.prefix)

    logger.info("Trackivity realtime API v%s initialized", config.version)
    return app
