"""API Error Handling.

Structured error responses, typed exceptions and global handlers for the
Trackivity realtime API.
"""

from src.api_errors.config import (
    ErrorCode,
    ErrorConfig,
    ErrorSeverity,
)
from src.api_errors.exceptions import (
    AuthenticationError,
    AuthorizationError,
    TrackivityAPIError,
    ConnectionLimitExceededError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from src.api_errors.handlers import (
    ErrorResponse,
    create_error_response,
    register_exception_handlers,
)
from src.api_errors.middleware import (
    ErrorHandlingMiddleware,
    sanitize_string,
)

__all__ = [
    # Config
    "ErrorCode",
    "ErrorConfig",
    "ErrorSeverity",
    # Exceptions
    "AuthenticationError",
    "AuthorizationError",
    "TrackivityAPIError",
    "ConnectionLimitExceededError",
    "NotFoundError",
    "RateLimitError",
    "ValidationError",
    # Handlers
    "ErrorResponse",
    "create_error_response",
    "register_exception_handlers",
    # Middleware
    "ErrorHandlingMiddleware",
    "sanitize_string",
]
