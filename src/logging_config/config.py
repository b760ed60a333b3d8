"""Logging Configuration.

Settings for structured logging, log levels, and output formats.
"""

from dataclasses import dataclass, field
from enum import Enum


class LogLevel(str, Enum):
    """Log level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output format."""
    JSON = "json"
    CONSOLE = "console"


@dataclass
class LoggingConfig:
    """Structured logging configuration."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    include_caller: bool = True
    exclude_paths: list[str] = field(default_factory=lambda: ["/health"])
    # Responses of this type are push streams: logged on open/close, never slow.
    stream_content_type: str = "text/event-stream"
    slow_threshold_ms: float = 1000.0
    service_name: str = "trackivity-realtime"
    noisy_loggers: list[str] = field(
        default_factory=lambda: ["asyncio", "httpx", "httpcore", "uvicorn.access"]
    )


DEFAULT_LOGGING_CONFIG = LoggingConfig()
