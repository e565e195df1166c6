# src/blobsink/engine/retry.py
"""Backoff for remote storage commits, built on tenacity.

The grouping and flush core never retries: a failed flush keeps every group
and the host decides when to flush again. Remote providers wrap their single
commit call (one upload per blob) in RetryManager so throttling, timeouts and
5xx responses are retried before the flush is declared failed.

Defaults match the upstream connector's GCS retry settings: 1s initial delay
doubling to a 32s cap, at most 6 attempts and 50s overall.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential_jitter,
)
from tenacity.stop import stop_base

if TYPE_CHECKING:
    from blobsink.core.config import RetrySettings

T = TypeVar("T")


class MaxRetriesExceeded(Exception):
    """The attempt count or the total time budget ran out."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")


@dataclass(frozen=True)
class RetryConfig:
    """Backoff parameters.

    max_attempts counts the first try: max_attempts=3 is one try and two
    retries. total_timeout=None removes the time budget.
    """

    max_attempts: int = 6
    base_delay: float = 1.0
    max_delay: float = 32.0
    jitter: float = 1.0
    exponential_base: float = 2.0
    total_timeout: float | None = 50.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    @classmethod
    def no_retry(cls) -> "RetryConfig":
        return cls(max_attempts=1, total_timeout=None)

    @classmethod
    def from_settings(cls, settings: "RetrySettings") -> "RetryConfig":
        return cls(
            max_attempts=settings.max_attempts,
            base_delay=settings.initial_delay_seconds,
            max_delay=settings.max_delay_seconds,
            jitter=settings.jitter_seconds,
            exponential_base=settings.delay_multiplier,
            total_timeout=settings.total_timeout_seconds,
        )

    def stop_condition(self) -> stop_base:
        stop: stop_base = stop_after_attempt(self.max_attempts)
        if self.total_timeout is not None:
            stop = stop | stop_after_delay(self.total_timeout)
        return stop

    def wait_strategy(self) -> wait_exponential_jitter:
        return wait_exponential_jitter(
            initial=self.base_delay,
            max=self.max_delay,
            exp_base=self.exponential_base,
            jitter=self.jitter,
        )


class RetryManager:
    """Runs one operation with exponential backoff.

    Example:
        manager = RetryManager(RetryConfig(max_attempts=3))
        manager.execute_with_retry(
            lambda: blob_client.upload_blob(data, overwrite=True),
            is_retryable=is_transient_azure_error,
            on_retry=lambda attempt, error: log.warning("Retrying", attempt=attempt),
        )
    """

    def __init__(self, config: RetryConfig) -> None:
        self._config = config

    @property
    def config(self) -> RetryConfig:
        return self._config

    def execute_with_retry(
        self,
        operation: Callable[[], T],
        *,
        is_retryable: Callable[[BaseException], bool],
        on_retry: Callable[[int, BaseException], None] | None = None,
    ) -> T:
        """Call operation until it succeeds, fails permanently or runs out of budget.

        on_retry(attempt, error) runs before each backoff sleep, i.e. once per
        failed attempt that will be retried.

        Raises:
            MaxRetriesExceeded: Retryable failures used up the budget.
            Exception: The first non-retryable error, unchanged.
        """

        def before_sleep(state: RetryCallState) -> None:
            if on_retry is not None and state.outcome is not None:
                error = state.outcome.exception()
                if error is not None:
                    on_retry(state.attempt_number, error)

        retrying = Retrying(
            stop=self._config.stop_condition(),
            wait=self._config.wait_strategy(),
            retry=retry_if_exception(is_retryable),
            before_sleep=before_sleep,
        )
        try:
            return retrying(operation)
        except RetryError as e:
            last = e.last_attempt
            error = last.exception()
            assert error is not None, "tenacity gave up on a successful attempt"
            raise MaxRetriesExceeded(last.attempt_number, error) from error
