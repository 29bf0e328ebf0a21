"""Process-wide settings for callsafe.

Timeouts, backoff values and pool sizes are read once at startup from
``CALLSAFE_*`` environment variables (or a ``.env`` file) and handed to the
:class:`~callsafe.runtime.Runtime` composition root. Nothing in the package
reads the environment after that.

Examples:
    >>> settings = CallsafeSettings(http_pool_size=4, max_backoff=5.0)
    >>> settings.backoff_policy().max_delay
    5.0
"""

from __future__ import annotations

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from callsafe.execution.retry import BackoffPolicy


class CallsafeSettings(BaseSettings):
    """Settings for the HTTP client, worker pools and logging.

    Fields
    ──────
    request_timeout      : Per-attempt connect/response timeout (seconds)
    initial_backoff      : First wait between attempts (seconds)
    backoff_multiplier   : Growth factor applied after every retried attempt
    max_backoff          : Ceiling for the computed backoff (seconds)
    backoff_jitter       : Randomise computed waits by ±25%
    call_deadline        : Overall budget for one call incl. waits (None = none)
    http_pool_size       : Workers for ``execute_async``
    task_pool_size       : Workers for ``run_async``
    log_level            : structlog level
    json_logs            : JSON output (None = auto-detect from TTY)
    service_name         : ``service.name`` stamped on every log line
    """

    model_config = SettingsConfigDict(
        env_prefix="CALLSAFE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Outbound calls ───────────────────────────────────────────
    request_timeout: float = Field(default=10.0, gt=0)
    initial_backoff: float = Field(default=0.5, gt=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    max_backoff: float = Field(default=30.0, gt=0)
    backoff_jitter: bool = False
    call_deadline: float | None = Field(default=None, gt=0)

    # ── Worker pools ─────────────────────────────────────────────
    http_pool_size: int = Field(default=10, ge=1)
    task_pool_size: int = Field(default=10, ge=1)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None
    service_name: str = "callsafe"

    @model_validator(mode="after")
    def _check_backoff_bounds(self) -> CallsafeSettings:
        if self.max_backoff < self.initial_backoff:
            raise ValueError("max_backoff must be >= initial_backoff")
        return self

    def backoff_policy(self) -> BackoffPolicy:
        """Build the retry policy these settings describe."""
        return BackoffPolicy(
            initial_delay=self.initial_backoff,
            multiplier=self.backoff_multiplier,
            max_delay=self.max_backoff,
            jitter=self.backoff_jitter,
            deadline=self.call_deadline,
        )
