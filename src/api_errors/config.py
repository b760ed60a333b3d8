"""API Error Configuration.

Error codes, severity levels, and settings for structured error handling.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict


class ErrorCode(Enum):
    """Standardized error codes for API responses."""

    # Validation errors (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Authentication errors (401)
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    INVALID_SESSION = "INVALID_SESSION"

    # Authorization errors (403)
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    SESSION_MISMATCH = "SESSION_MISMATCH"

    # Not found errors (404)
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"

    # Rate limit / capacity errors (429)
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    CONNECTION_LIMIT_EXCEEDED = "CONNECTION_LIMIT_EXCEEDED"

    # Server errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorSeverity(Enum):
    """Severity levels for error logging."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


ERROR_STATUS_MAP: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.AUTHENTICATION_REQUIRED: 401,
    ErrorCode.INVALID_SESSION: 401,
    ErrorCode.INSUFFICIENT_PERMISSIONS: 403,
    ErrorCode.SESSION_MISMATCH: 403,
    ErrorCode.RESOURCE_NOT_FOUND: 404,
    ErrorCode.SESSION_NOT_FOUND: 404,
    ErrorCode.RATE_LIMIT_EXCEEDED: 429,
    ErrorCode.CONNECTION_LIMIT_EXCEEDED: 429,
    ErrorCode.INTERNAL_ERROR: 500,
}

ERROR_SEVERITY_MAP: Dict[ErrorCode, ErrorSeverity] = {
    ErrorCode.VALIDATION_ERROR: ErrorSeverity.LOW,
    ErrorCode.AUTHENTICATION_REQUIRED: ErrorSeverity.MEDIUM,
    ErrorCode.INVALID_SESSION: ErrorSeverity.MEDIUM,
    ErrorCode.INSUFFICIENT_PERMISSIONS: ErrorSeverity.MEDIUM,
    ErrorCode.SESSION_MISMATCH: ErrorSeverity.HIGH,
    ErrorCode.RESOURCE_NOT_FOUND: ErrorSeverity.LOW,
    ErrorCode.SESSION_NOT_FOUND: ErrorSeverity.LOW,
    ErrorCode.RATE_LIMIT_EXCEEDED: ErrorSeverity.MEDIUM,
    ErrorCode.CONNECTION_LIMIT_EXCEEDED: ErrorSeverity.MEDIUM,
    ErrorCode.INTERNAL_ERROR: ErrorSeverity.CRITICAL,
}


@dataclass
class ErrorConfig:
    """Configuration for API error handling."""

    include_request_id: bool = True
    log_all_errors: bool = True
    suppress_internal_details: bool = True
    max_error_detail_length: int = 1000


DEFAULT_ERROR_CONFIG = ErrorConfig()
