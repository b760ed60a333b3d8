"""Structured logging and request tracing for the Trackivity realtime service."""

from src.logging_config.config import LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import RequestContext, generate_request_id, get_context_dict
from src.logging_config.setup import ConsoleFormatter, StructuredFormatter, configure_logging, get_logger

__all__ = [
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "RequestContext",
    "ConsoleFormatter",
    "StructuredFormatter",
    "configure_logging",
    "generate_request_id",
    "get_context_dict",
    "get_logger",
]
