"""
Rendering collaborators for :class:`ResultEnvelope`.

Maps envelope error codes to HTTP status codes and renders an envelope into a
``(status, body)`` pair a web layer can hand to its response class. The
``success_response`` / ``error_response`` builders have the shape the task
harness expects for its ``build_response`` argument.
"""

from __future__ import annotations

from typing import Any, TypeVar

from callsafe.core.result import ResultEnvelope

T = TypeVar("T")

# ── Error code → HTTP status mapping ─────────────────────────────────────

ERROR_CODE_TO_STATUS: dict[str, int] = {
    "VALIDATION_FAILED": 400,
    "HTTP_ERROR": 502,
    "RATE_LIMITED": 429,
    "TRANSPORT_ERROR": 502,
    "DEADLINE_EXCEEDED": 504,
    "CANCELLED": 503,
    "BUSINESS_LOGIC_FAILED": 500,
    "DATA_ACCESS_FAILED": 500,
    "ASYNC_TASK_FAILED": 500,
    "RESPONSE_BUILD_FAILED": 500,
    "INTERNAL": 500,
}


def status_for_error_code(code: str | None) -> int:
    """Resolve an envelope error code to HTTP status, defaulting to 500."""
    return ERROR_CODE_TO_STATUS.get(code or "INTERNAL", 500)


def success_response(payload: T) -> ResultEnvelope[T]:
    """Default response builder: wrap *payload* in a success envelope."""
    return ResultEnvelope.ok(payload)


def error_response(message: str, code: str = "INTERNAL") -> ResultEnvelope[Any]:
    """Build a failure envelope with *message*."""
    return ResultEnvelope.fail(message, code=code)


def render_response(envelope: ResultEnvelope[Any]) -> tuple[int, dict[str, Any]]:
    """Render *envelope* into ``(http_status, json_body)``."""
    if envelope.succeeded:
        return 200, envelope.to_dict()
    return status_for_error_code(envelope.code), envelope.to_dict()


__all__ = [
    "ERROR_CODE_TO_STATUS",
    "status_for_error_code",
    "success_response",
    "error_response",
    "render_response",
]
