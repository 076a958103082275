"""Circuit breaker for the OpenRouter API.

The circuit opens once ``failure_threshold`` consecutive failures have been
recorded. After ``reset_timeout_seconds`` it is fully reset and the next call
goes through; there is no half-open trial call.
"""

import threading
import time
from typing import Callable

import structlog

from .models import CircuitState, CircuitStatus

logger = structlog.get_logger(__name__)


class CircuitBreaker:
    """Thread-safe consecutive-failure circuit breaker."""

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout_seconds: float = 60,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the circuit breaker.

        Args:
            failure_threshold: Consecutive failures that open the circuit
            reset_timeout_seconds: Time the circuit stays open
            enabled: When False, every call is allowed and nothing is recorded
            clock: Monotonic clock in seconds
        """
        self.failure_threshold = max(1, failure_threshold)
        self.reset_timeout_seconds = max(0.0, reset_timeout_seconds)
        self.enabled = enabled
        self._clock = clock
        self._state = CircuitState()
        self._lock = threading.Lock()
        self.logger = structlog.get_logger(self.__class__.__name__)

    def allow_request(self) -> bool:
        """Check whether a call may proceed, resetting an expired open circuit."""
        if not self.enabled:
            return True

        with self._lock:
            failures = self._state.consecutive_failures
            if failures < self.failure_threshold:
                return True

            now = self._clock()
            if self._state.opened_at is None:
                self._state.opened_at = now
                return False

            elapsed = now - self._state.opened_at
            if elapsed < self.reset_timeout_seconds:
                return False

            self._state.consecutive_failures = 0
            self._state.opened_at = None

        self.logger.info("Circuit reset timeout elapsed, closing circuit", elapsed=elapsed)
        return True

    def record_failure(self) -> None:
        """Record a failed call."""
        if not self.enabled:
            return

        with self._lock:
            self._state.consecutive_failures += 1
            failures = self._state.consecutive_failures
            opened = failures >= self.failure_threshold and self._state.opened_at is None
            if opened:
                self._state.opened_at = self._clock()

        self.logger.warning(
            "OpenRouter failure recorded",
            consecutive_failures=failures,
            threshold=self.failure_threshold,
        )
        if opened:
            self.logger.error("Circuit opened due to repeated failures", failures=failures)

    def record_success(self) -> None:
        """Record a successful call."""
        if not self.enabled:
            return

        with self._lock:
            previous = self._state.consecutive_failures
            self._state.consecutive_failures = 0
            self._state.opened_at = None

        if previous > 0:
            self.logger.info(
                "OpenRouter success after failures, resetting counter", previous=previous
            )

    @property
    def status(self) -> CircuitStatus:
        """Current status without resetting an expired circuit."""
        with self._lock:
            if not self.enabled or self._state.consecutive_failures < self.failure_threshold:
                return CircuitStatus.CLOSED
            if (
                self._state.opened_at is not None
                and self._clock() - self._state.opened_at >= self.reset_timeout_seconds
            ):
                return CircuitStatus.CLOSED
            return CircuitStatus.OPEN

    def snapshot(self) -> CircuitState:
        """Return a consistent copy of the current state."""
        with self._lock:
            return self._state.model_copy()
