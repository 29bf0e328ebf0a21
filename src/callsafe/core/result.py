"""
Result envelope returned by every callsafe operation.

:class:`ResultEnvelope` is the single value that crosses the boundary of the
HTTP client and the task harness. Exceptions stay inside; callers inspect
``succeeded`` and read either ``payload`` or ``message``.

Exactly one of ``payload`` / ``message`` is authoritative: ``payload`` when
``succeeded`` is true, ``message`` otherwise. A successful envelope may still
have ``payload=None`` (actions that produce nothing). Envelopes are frozen.
Use :meth:`ResultEnvelope.ok` and :meth:`ResultEnvelope.fail` rather than the
constructor.

Examples:
    >>> ResultEnvelope.ok({"id": 42}).payload
    {'id': 42}
    >>> failed = ResultEnvelope.fail("HTTP Error: 404 - missing", code="HTTP_ERROR")
    >>> failed.succeeded, failed.message
    (False, 'HTTP Error: 404 - missing')
    >>> failed.unwrap_or("fallback")
    'fallback'
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class ResultEnvelope(Generic[T]):
    """Immutable success/failure container.

    Attributes:
        succeeded: ``True`` when the operation completed without error.
        payload: The typed output (``None`` on failure).
        message: Human-readable failure description (``None`` on success).
        code: Machine-readable failure code (``HTTP_ERROR``,
            ``VALIDATION_FAILED``, ...). ``None`` on success.
        status_code: HTTP status of the last response, when one was received.
        elapsed_ms: Wall-clock time the operation took.
    """

    succeeded: bool
    payload: T | None = None
    message: str | None = None
    code: str | None = None
    status_code: int | None = None
    elapsed_ms: float = 0.0

    # ------------------------------------------------------------------ #
    # Factory helpers
    # ------------------------------------------------------------------ #

    @classmethod
    def ok(
        cls,
        payload: T | None = None,
        *,
        status_code: int | None = None,
        elapsed_ms: float = 0.0,
    ) -> ResultEnvelope[T]:
        """Create a successful envelope."""
        return cls(
            succeeded=True,
            payload=payload,
            status_code=status_code,
            elapsed_ms=elapsed_ms,
        )

    @classmethod
    def fail(
        cls,
        message: str,
        *,
        code: str = "INTERNAL",
        status_code: int | None = None,
        elapsed_ms: float = 0.0,
    ) -> ResultEnvelope[T]:
        """Create a failed envelope."""
        return cls(
            succeeded=False,
            message=message,
            code=code,
            status_code=status_code,
            elapsed_ms=elapsed_ms,
        )

    # ------------------------------------------------------------------ #
    # Inspection
    # ------------------------------------------------------------------ #

    @property
    def failed(self) -> bool:
        return not self.succeeded

    def unwrap_or(self, default: T) -> T:
        """Return the payload, or *default* when the operation failed."""
        if self.succeeded:
            return self.payload  # type: ignore[return-value]
        return default

    def map(self, f: Callable[[T], U]) -> ResultEnvelope[U]:
        """Transform the payload of a successful envelope; failures pass through."""
        if not self.succeeded:
            return self  # type: ignore[return-value]
        return replace(self, payload=f(self.payload))  # type: ignore[arg-type]

    def with_elapsed(self, elapsed_ms: float) -> ResultEnvelope[T]:
        """Return a copy stamped with *elapsed_ms*."""
        return replace(self, elapsed_ms=elapsed_ms)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a plain dict (for JSON responses)."""
        d: dict[str, Any] = {"success": self.succeeded}
        if self.succeeded:
            if self.payload is not None:
                d["data"] = self.payload
        else:
            d["message"] = self.message
            d["code"] = self.code
        if self.status_code is not None:
            d["status_code"] = self.status_code
        if self.elapsed_ms:
            d["elapsed_ms"] = round(self.elapsed_ms, 2)
        return d

    def __repr__(self) -> str:
        if self.succeeded:
            return f"ResultEnvelope.ok({self.payload!r})"
        return f"ResultEnvelope.fail({self.message!r}, code={self.code!r})"


__all__ = ["ResultEnvelope"]
