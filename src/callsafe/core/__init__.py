"""
Core primitives: result envelope, errors, rendering and logging.

Settings live in ``callsafe.core.settings`` and are imported explicitly; they
pull in pydantic-settings and the retry policy.
"""

from callsafe.core.errors import (
    CallsafeError,
    DataAccessError,
    ErrorCategory,
    ErrorContext,
    HttpStatusError,
    TransientError,
    ValidationError,
    WorkError,
    categorize_error,
)
from callsafe.core.logging import LogContext, configure_logging, get_logger
from callsafe.core.responses import render_response, status_for_error_code
from callsafe.core.result import ResultEnvelope

__all__ = [
    "CallsafeError",
    "DataAccessError",
    "ErrorCategory",
    "ErrorContext",
    "HttpStatusError",
    "LogContext",
    "ResultEnvelope",
    "TransientError",
    "ValidationError",
    "WorkError",
    "categorize_error",
    "configure_logging",
    "get_logger",
    "render_response",
    "status_for_error_code",
]
