"""Retry policy for the OpenRouter client.

Every attempt is classified into an ``AttemptOutcome``; ``BackoffState``
decides from the outcome whether another attempt is made and how long to
wait before it.
"""

import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator

# Lower bound applied to server-provided Retry-After waits
MIN_RETRY_AFTER_MS = 500.0


class AttemptOutcome(str, Enum):
    """Classification of a single HTTP attempt."""

    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXCEEDED = "quota_exceeded"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    TRANSPORT_ERROR = "transport_error"

    @property
    def retryable(self) -> bool:
        """Whether another attempt may follow this outcome."""
        return self in (
            AttemptOutcome.RATE_LIMITED,
            AttemptOutcome.SERVER_ERROR,
            AttemptOutcome.TRANSPORT_ERROR,
        )


def classify_status(status_code: int) -> AttemptOutcome:
    """Map an HTTP status code to an attempt outcome."""
    if 200 <= status_code < 300:
        return AttemptOutcome.SUCCESS
    if status_code == 429:
        return AttemptOutcome.RATE_LIMITED
    if status_code == 402:
        return AttemptOutcome.QUOTA_EXCEEDED
    if 500 <= status_code < 600:
        return AttemptOutcome.SERVER_ERROR
    return AttemptOutcome.CLIENT_ERROR


def parse_retry_after_ms(
    header_value: Optional[str],
    default_ms: float,
    now: Optional[datetime] = None,
) -> float:
    """Convert a Retry-After header into a wait in milliseconds.

    Args:
        header_value: Integer seconds or an HTTP-date
        default_ms: Wait used when the header is absent or unparseable
        now: Current time for HTTP-date deltas

    Returns:
        Wait in milliseconds, at least ``MIN_RETRY_AFTER_MS`` when taken from the header
    """
    if header_value is None:
        return default_ms

    value = header_value.strip()
    try:
        seconds = int(value)
        return max(MIN_RETRY_AFTER_MS, seconds * 1000.0)
    except ValueError:
        pass

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return default_ms
    if retry_at is None:
        return default_ms
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)

    current = now or datetime.now(timezone.utc)
    delta_ms = (retry_at - current).total_seconds() * 1000.0
    return max(MIN_RETRY_AFTER_MS, delta_ms)


class RetryPolicy(BaseModel):
    """Attempt budget and backoff parameters."""

    max_attempts: int = Field(3, ge=1, description="Attempts per request")
    initial_backoff_ms: float = Field(1000, gt=0, description="First backoff")
    max_backoff_ms: float = Field(10000, gt=0, description="Backoff cap")
    jitter_fraction: float = Field(
        0.2, ge=0.0, le=1.0, description="Maximum extra random delay as a fraction"
    )

    @model_validator(mode="after")
    def _raise_cap_to_initial(self) -> "RetryPolicy":
        if self.max_backoff_ms < self.initial_backoff_ms:
            self.max_backoff_ms = self.initial_backoff_ms
        return self


class BackoffState:
    """Attempt counter and current backoff for one request."""

    def __init__(self, policy: RetryPolicy, rng: Optional[random.Random] = None):
        self.policy = policy
        self.attempt = 0
        self.delay_ms = policy.initial_backoff_ms
        self._rng = rng or random.Random()

    @property
    def exhausted(self) -> bool:
        """Whether the attempt budget is used up."""
        return self.attempt >= self.policy.max_attempts

    def begin_attempt(self) -> int:
        """Start the next attempt and return its 1-based number."""
        self.attempt += 1
        return self.attempt

    def jitter_ms(self, base_ms: float) -> float:
        """Random extra delay of up to ``jitter_fraction`` of ``base_ms``."""
        return self._rng.random() * base_ms * self.policy.jitter_fraction

    def next_wait_ms(
        self, outcome: AttemptOutcome, retry_after_ms: Optional[float] = None
    ) -> Optional[float]:
        """Decide what follows a failed attempt.

        Args:
            outcome: Classification of the attempt that just finished
            retry_after_ms: Server-provided wait, used for rate-limited attempts

        Returns:
            Milliseconds to sleep before the next attempt, or None to stop
        """
        if not outcome.retryable or self.exhausted:
            return None

        if outcome is AttemptOutcome.RATE_LIMITED and retry_after_ms is not None:
            base_ms = retry_after_ms
        else:
            base_ms = self.delay_ms

        self.delay_ms = min(self.delay_ms * 2, self.policy.max_backoff_ms)
        return base_ms + self.jitter_ms(base_ms)
