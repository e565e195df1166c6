# tests/unit/engine/test_retry.py
"""Tests for RetryManager."""

import pytest

from blobsink.core.config import RetrySettings
from blobsink.engine.retry import MaxRetriesExceeded, RetryConfig, RetryManager


def _fast(max_attempts: int = 3) -> RetryManager:
    return RetryManager(RetryConfig(max_attempts=max_attempts, base_delay=0.001, max_delay=0.01, jitter=0.0, total_timeout=None))


class TestRetryManager:
    """Retry logic with tenacity."""

    def test_retry_on_retryable_error(self) -> None:
        call_count = 0

        def flaky_operation() -> str:
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ConnectionError("Transient error")
            return "success"

        result = _fast().execute_with_retry(flaky_operation, is_retryable=lambda e: isinstance(e, ConnectionError))

        assert result == "success"
        assert call_count == 3

    def test_no_retry_on_non_retryable(self) -> None:
        call_count = 0

        def failing_operation() -> None:
            nonlocal call_count
            call_count += 1
            raise PermissionError("Not retryable")

        with pytest.raises(PermissionError):
            _fast().execute_with_retry(failing_operation, is_retryable=lambda e: isinstance(e, ConnectionError))

        assert call_count == 1

    def test_max_attempts_exceeded(self) -> None:
        def always_fails() -> None:
            raise ConnectionError("Always fails")

        with pytest.raises(MaxRetriesExceeded) as exc_info:
            _fast(max_attempts=2).execute_with_retry(always_fails, is_retryable=lambda e: isinstance(e, ConnectionError))

        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.last_error, ConnectionError)

    def test_on_retry_called_per_failed_attempt(self) -> None:
        seen: list[tuple[int, str]] = []
        call_count = 0

        def flaky() -> str:
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise ConnectionError(f"fail {call_count}")
            return "ok"

        _fast().execute_with_retry(
            flaky,
            is_retryable=lambda e: isinstance(e, ConnectionError),
            on_retry=lambda attempt, error: seen.append((attempt, str(error))),
        )

        assert seen == [(1, "fail 1"), (2, "fail 2")]

    def test_no_retry_config(self) -> None:
        call_count = 0

        def always_fails() -> None:
            nonlocal call_count
            call_count += 1
            raise ConnectionError("down")

        with pytest.raises(MaxRetriesExceeded):
            RetryManager(RetryConfig.no_retry()).execute_with_retry(always_fails, is_retryable=lambda e: True)

        assert call_count == 1


class TestRetryConfig:
    def test_defaults_follow_upstream_connector(self) -> None:
        config = RetryConfig()
        assert (config.max_attempts, config.base_delay, config.max_delay, config.exponential_base, config.total_timeout) == (
            6,
            1.0,
            32.0,
            2.0,
            50.0,
        )

    def test_from_settings(self) -> None:
        config = RetryConfig.from_settings(RetrySettings(max_attempts=4, initial_delay_seconds=0.5, max_delay_seconds=8.0))
        assert config.max_attempts == 4
        assert config.base_delay == 0.5
        assert config.max_delay == 8.0

    def test_zero_attempts_rejected(self) -> None:
        with pytest.raises(ValueError, match="max_attempts"):
            RetryConfig(max_attempts=0)
