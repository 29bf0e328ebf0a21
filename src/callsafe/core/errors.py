"""
Structured error types for callsafe.

Provides a typed error hierarchy carrying the metadata the retry loop and the
task harness need: a category for reporting, a retryable flag, an optional
server-suggested retry delay, structured context and a chained cause.

Neither the HTTP client nor the task harness raises these past its own
boundary. They are raised *inside* (by validators, work functions and the
outcome classifier), caught at the boundary, and turned into an error
envelope. The hierarchy exists so that the boundary can decide what the
failure was without parsing strings.

Manifesto:
    - **Explicit retry semantics:** Every error knows if it is retryable
    - **Rich context:** Errors carry URL, status, attempt and phase
    - **Error chaining:** The original exception is kept as ``cause``

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        CallsafeError                          │
        │  (category, retryable, retry_after, context, cause)           │
        ├──────────────────────────────────────────────────────────────┤
        │                                                               │
        │  TransientError           HttpStatusError   ValidationError   │
        │  (retryable=True)         (terminal)        (VALIDATION)      │
        │    NetworkError                                               │
        │    TimeoutError           WorkError         DataAccessError   │
        │    RateLimitError         (WORK)            (DATA_ACCESS)     │
        │    ServiceUnavailableError                                    │
        │    ServerError            RetryInterruptedError               │
        │                           DeadlineExceededError               │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = RateLimitError(retry_after=2)
    >>> error.retryable, error.retry_after
    (True, 2)
    >>> HttpStatusError(404, "missing").retryable
    False

Tags:
    error-handling, exception-hierarchy, retry-logic, callsafe

Doc-Types:
    - API Reference
    - Error Handling Guide
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and reporting."""

    # Outbound call errors
    NETWORK = "NETWORK"           # Connection, DNS, read/write timeout
    RATE_LIMIT = "RATE_LIMIT"     # 429
    UPSTREAM = "UPSTREAM"         # 5xx from the remote service
    HTTP = "HTTP"                 # Non-retryable status (4xx etc.)

    # Harness errors
    VALIDATION = "VALIDATION"     # Caller-supplied validator rejected input
    WORK = "WORK"                 # Business logic / background task failure
    DATA_ACCESS = "DATA_ACCESS"   # Data-store operation failure

    # Lifecycle errors
    CANCELLED = "CANCELLED"       # Interrupted wait, pool shut down
    DEADLINE = "DEADLINE"         # Overall call deadline exhausted

    # Internal errors
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to an error.

    Attributes:
        url: Final URL of the outbound request
        method: HTTP method
        http_status: Response status code if a response was received
        attempt: One-based attempt number the error occurred on
        phase: Harness phase the error was raised in
        metadata: Additional key-value pairs
    """

    url: str | None = None
    method: str | None = None
    http_status: int | None = None
    attempt: int | None = None
    phase: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["url", "method", "http_status", "attempt", "phase"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class CallsafeError(Exception):
    """
    Base exception for all callsafe errors.

    Subclasses set ``default_category`` and ``default_retryable`` so that
    raising the right type is enough to get the right retry behaviour.

    Examples:
        >>> error = CallsafeError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>
        >>> error.with_context(url="https://api.example.com").context.url
        'https://api.example.com'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> CallsafeError:
        """
        Add context to this error (fluent API).

        Usage:
            raise NetworkError("Connect failed").with_context(
                url="https://api.example.com/users", attempt=2
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSIENT ERRORS (Retryable)
# =============================================================================


class TransientError(CallsafeError):
    """
    Temporary error that may succeed on retry.

    Raised for rate limiting, service unavailability, 5xx responses and
    transport faults. ``retry_after`` carries the server's hint in seconds
    when one was given.
    """

    default_category = ErrorCategory.NETWORK
    default_retryable = True


class NetworkError(TransientError):
    """Connection-level transport fault."""

    default_category = ErrorCategory.NETWORK


class TimeoutError(TransientError):
    """Per-attempt timeout elapsed before a response arrived."""

    default_category = ErrorCategory.NETWORK


class RateLimitError(TransientError):
    """Remote service answered 429."""

    default_category = ErrorCategory.RATE_LIMIT

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        retry_after: int | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, retry_after=retry_after, **kwargs)


class ServiceUnavailableError(TransientError):
    """Remote service answered 503."""

    default_category = ErrorCategory.UPSTREAM


class ServerError(TransientError):
    """Remote service answered with a 5xx other than 503."""

    default_category = ErrorCategory.UPSTREAM


# =============================================================================
# TERMINAL CALL ERRORS
# =============================================================================


class HttpStatusError(CallsafeError):
    """Non-retryable HTTP status (any non-2xx that is not 429 or 5xx)."""

    default_category = ErrorCategory.HTTP
    default_retryable = False

    def __init__(self, status_code: int, body: str = "", **kwargs: Any):
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP Error: {status_code} - {body}", **kwargs)


class RetryInterruptedError(CallsafeError):
    """A backoff wait was interrupted (client or pool shutting down)."""

    default_category = ErrorCategory.CANCELLED
    default_retryable = False


class DeadlineExceededError(CallsafeError):
    """The overall call deadline would be overrun by the next wait."""

    default_category = ErrorCategory.DEADLINE
    default_retryable = False


# =============================================================================
# HARNESS ERRORS
# =============================================================================


class ValidationError(CallsafeError):
    """
    Input rejected by a validator.

    Never retryable - the input must be fixed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class WorkError(CallsafeError):
    """Business logic or background work failed."""

    default_category = ErrorCategory.WORK
    default_retryable = False


class DataAccessError(CallsafeError):
    """Data-store query or action failed."""

    default_category = ErrorCategory.DATA_ACCESS
    default_retryable = False


# =============================================================================
# CLASSIFICATION
# =============================================================================


def categorize_error(error: BaseException) -> ErrorCategory:
    """Category reported for *error* on harness failure log lines."""
    if isinstance(error, CallsafeError):
        return error.category
    if isinstance(error, OSError):
        return ErrorCategory.NETWORK
    if isinstance(error, (ValueError, TypeError)):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "CallsafeError",
    # Transient
    "TransientError",
    "NetworkError",
    "TimeoutError",
    "RateLimitError",
    "ServiceUnavailableError",
    "ServerError",
    # Terminal call errors
    "HttpStatusError",
    "RetryInterruptedError",
    "DeadlineExceededError",
    # Harness
    "ValidationError",
    "WorkError",
    "DataAccessError",
    # Classification
    "categorize_error",
]
