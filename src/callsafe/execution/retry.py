"""Backoff policy and per-call retry state for outbound HTTP calls.

:class:`BackoffPolicy` is the immutable, process-wide description of how long
to wait between attempts. :class:`RetryState` is created fresh for every call,
tracks the attempt counter and the current backoff, and is discarded when the
call finishes. Nothing here sleeps; the client decides when to wait.

Example:
    >>> from callsafe.execution.retry import BackoffPolicy, RetryState
    >>>
    >>> state = RetryState(BackoffPolicy(initial_delay=0.5), max_retries=2)
    >>> state.begin_attempt()
    1
    >>> state.next_wait()
    0.5
    >>> state.advance()
    >>> state.next_wait()
    1.0
"""

import random
import time
from dataclasses import dataclass, field


@dataclass(frozen=True)
class BackoffPolicy:
    """Exponential backoff with a ceiling, optional jitter and deadline.

    Delay for retry *n* (zero-based) = min(initial_delay * multiplier ** n, max_delay)

    Attributes:
        initial_delay: First wait in seconds (0.5 in the reference policy)
        multiplier: Growth factor after every retried attempt
        max_delay: Ceiling for the computed wait in seconds
        jitter: Add randomness to computed waits
        jitter_range: Range of jitter as fraction of delay (0.0-1.0)
        deadline: Overall budget in seconds for one call (None = unbounded)
    """

    initial_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 30.0
    jitter: bool = False
    jitter_range: float = 0.25
    deadline: float | None = None

    def next_delay(self, retry_index: int) -> float:
        """Calculate the computed backoff before retry *retry_index*."""
        delay = min(
            self.initial_delay * (self.multiplier ** retry_index),
            self.max_delay,
        )

        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay += random.uniform(-jitter_amount, jitter_amount)
            delay = max(0, delay)

        return delay


def parse_retry_after(value: str | None) -> int | None:
    """Parse a ``Retry-After`` header given as integer seconds.

    Returns None for missing, non-numeric or negative values (HTTP-date
    forms are not honoured).
    """
    if value is None:
        return None
    try:
        seconds = int(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None


@dataclass
class RetryState:
    """Transient state of one executor call.

    Attributes:
        policy: Backoff policy in force for this call
        max_retries: Additional attempts allowed after the first one
        attempt: One-based number of the current attempt (0 before the first)
        backoff: Current computed backoff in seconds
        last_error: Classified failure of the most recent attempt
    """

    policy: BackoffPolicy
    max_retries: int = 0
    attempt: int = field(default=0, init=False)
    backoff: float = field(default=0.0, init=False)
    last_error: Exception | None = field(default=None, init=False)
    started_at: float = field(default_factory=time.monotonic, init=False)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        self.backoff = self.policy.next_delay(0)

    def begin_attempt(self) -> int:
        """Start the next attempt and return its one-based number."""
        self.attempt += 1
        return self.attempt

    def record_failure(self, error: Exception) -> None:
        self.last_error = error

    @property
    def can_retry(self) -> bool:
        """True while the retry budget allows another attempt."""
        return self.attempt <= self.max_retries

    def next_wait(self, retry_after: int | None = None) -> float:
        """Seconds to wait before the next attempt.

        A server-provided ``retry_after`` (seconds) wins over the computed
        backoff.
        """
        if retry_after is not None:
            return float(retry_after)
        return self.backoff

    def advance(self) -> None:
        """Grow the backoff after a retried attempt."""
        self.backoff = self.policy.next_delay(self.attempt)

    @property
    def elapsed_seconds(self) -> float:
        """Total elapsed time since the call started."""
        return time.monotonic() - self.started_at

    def exceeds_deadline(self, wait: float) -> bool:
        """True if waiting *wait* seconds would overrun the policy deadline."""
        if self.policy.deadline is None:
            return False
        return self.elapsed_seconds + wait > self.policy.deadline
