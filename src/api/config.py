"""API Configuration.

Settings for the HTTP surface of the realtime service.
"""

from dataclasses import dataclass, field


@dataclass
class APIConfig:
    """Core API settings."""

    title: str = "Trackivity Realtime API"
    version: str = "1.0.0"
    description: str = "Targeted real-time event delivery over Server-Sent Events"
    prefix: str = "/api"
    docs_url: str = "/docs"
    cors_origins: list[str] = field(default_factory=lambda: [
        "http://localhost:5173",   # SvelteKit dev server
        "http://localhost:3000",
    ])
    cors_methods: list[str] = field(default_factory=lambda: ["GET", "POST", "OPTIONS"])
    cors_headers: list[str] = field(default_factory=lambda: ["*"])
    session_header: str = "X-Session-ID"
    session_cookie: str = "session_id"
    session_ttl_hours: int = 24


DEFAULT_API_CONFIG = APIConfig()
