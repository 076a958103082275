"""Tests for the retry policy and backoff state machine."""

import random
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import pytest
from pydantic import ValidationError

from haitale.ai.retry import (
    MIN_RETRY_AFTER_MS,
    AttemptOutcome,
    BackoffState,
    RetryPolicy,
    classify_status,
    parse_retry_after_ms,
)


class TestClassifyStatus:
    """Test HTTP status classification."""

    @pytest.mark.parametrize(
        "status_code,expected",
        [
            (200, AttemptOutcome.SUCCESS),
            (204, AttemptOutcome.SUCCESS),
            (429, AttemptOutcome.RATE_LIMITED),
            (402, AttemptOutcome.QUOTA_EXCEEDED),
            (400, AttemptOutcome.CLIENT_ERROR),
            (401, AttemptOutcome.CLIENT_ERROR),
            (404, AttemptOutcome.CLIENT_ERROR),
            (500, AttemptOutcome.SERVER_ERROR),
            (503, AttemptOutcome.SERVER_ERROR),
        ],
    )
    def test_classification(self, status_code, expected):
        """Test the mapping of status codes to outcomes."""
        assert classify_status(status_code) == expected

    def test_retryable_outcomes(self):
        """Test which outcomes allow another attempt."""
        assert AttemptOutcome.RATE_LIMITED.retryable
        assert AttemptOutcome.SERVER_ERROR.retryable
        assert AttemptOutcome.TRANSPORT_ERROR.retryable
        assert not AttemptOutcome.QUOTA_EXCEEDED.retryable
        assert not AttemptOutcome.CLIENT_ERROR.retryable
        assert not AttemptOutcome.SUCCESS.retryable


class TestRetryAfter:
    """Test Retry-After header parsing."""

    def test_integer_seconds(self):
        """Test delta-seconds values."""
        assert parse_retry_after_ms("2", default_ms=1000) == 2000.0
        assert parse_retry_after_ms(" 30 ", default_ms=1000) == 30000.0

    def test_floor_applied(self):
        """Test the minimum wait for tiny values."""
        assert parse_retry_after_ms("0", default_ms=1000) == MIN_RETRY_AFTER_MS

    def test_missing_header_uses_default(self):
        """Test that no header means the computed backoff."""
        assert parse_retry_after_ms(None, default_ms=1234) == 1234

    def test_garbage_uses_default(self):
        """Test that an unparseable header means the computed backoff."""
        assert parse_retry_after_ms("soon", default_ms=1234) == 1234

    def test_http_date(self):
        """Test an HTTP-date converted to a delta from now."""
        now = datetime(2025, 1, 29, 12, 0, 0, tzinfo=timezone.utc)
        header = format_datetime(now + timedelta(seconds=5), usegmt=True)

        assert parse_retry_after_ms(header, default_ms=1000, now=now) == pytest.approx(5000)

    def test_http_date_in_past(self):
        """Test that a past HTTP-date yields the minimum wait."""
        now = datetime(2025, 1, 29, 12, 0, 0, tzinfo=timezone.utc)
        header = format_datetime(now - timedelta(seconds=30), usegmt=True)

        assert parse_retry_after_ms(header, default_ms=1000, now=now) == MIN_RETRY_AFTER_MS


class TestRetryPolicy:
    """Test retry policy validation."""

    def test_cap_raised_to_initial(self):
        """Test that a cap below the initial backoff is raised."""
        policy = RetryPolicy(initial_backoff_ms=5000, max_backoff_ms=1000)

        assert policy.max_backoff_ms == 5000

    def test_invalid_values_rejected(self):
        """Test attempt and jitter bounds."""
        with pytest.raises(ValidationError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValidationError):
            RetryPolicy(jitter_fraction=1.5)


class TestBackoffState:
    """Test the backoff state machine."""

    def test_doubles_and_caps(self):
        """Test exponential growth up to the cap."""
        policy = RetryPolicy(
            max_attempts=6, initial_backoff_ms=1000, max_backoff_ms=5000, jitter_fraction=0
        )
        state = BackoffState(policy)

        waits = []
        for _ in range(5):
            state.begin_attempt()
            waits.append(state.next_wait_ms(AttemptOutcome.SERVER_ERROR))

        assert waits == [1000, 2000, 4000, 5000, 5000]

    def test_stops_when_exhausted(self):
        """Test that no wait is returned after the last attempt."""
        state = BackoffState(RetryPolicy(max_attempts=2, jitter_fraction=0))

        state.begin_attempt()
        assert state.next_wait_ms(AttemptOutcome.TRANSPORT_ERROR) is not None
        state.begin_attempt()
        assert state.exhausted
        assert state.next_wait_ms(AttemptOutcome.TRANSPORT_ERROR) is None

    @pytest.mark.parametrize(
        "outcome", [AttemptOutcome.CLIENT_ERROR, AttemptOutcome.QUOTA_EXCEEDED]
    )
    def test_non_retryable_stops_immediately(self, outcome):
        """Test that terminal outcomes end the loop on the first attempt."""
        state = BackoffState(RetryPolicy(max_attempts=5))
        state.begin_attempt()

        assert state.next_wait_ms(outcome) is None

    def test_rate_limited_uses_retry_after(self):
        """Test that a server wait replaces the computed backoff."""
        state = BackoffState(RetryPolicy(max_attempts=3, jitter_fraction=0))
        state.begin_attempt()

        assert state.next_wait_ms(AttemptOutcome.RATE_LIMITED, retry_after_ms=7000) == 7000
        # computed backoff still advanced
        assert state.delay_ms == 2000

    def test_jitter_within_fraction(self):
        """Test that jitter adds at most jitter_fraction of the base wait."""
        policy = RetryPolicy(max_attempts=100, initial_backoff_ms=1000, jitter_fraction=0.25)

        for seed in range(20):
            state = BackoffState(policy, random.Random(seed))
            state.begin_attempt()
            wait = state.next_wait_ms(AttemptOutcome.SERVER_ERROR)
            assert 1000 <= wait <= 1250
